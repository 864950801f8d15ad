"""Prompt builders for remote invoice extraction."""

from datetime import date

_DOCUMENT_PROMPT = "\n".join(
    [
        "Extract invoice fields from this PDF and return JSON only.",
        "Use the response schema exactly.",
        "Rules:",
        "- Do not invent details that are not present.",
        "- For unknown text, use an empty string.",
        "- For unknown numeric values, use 0.",
        "- invoiceDate must be YYYY-MM-DD when possible, otherwise empty string.",
        '- discountType must be "fixed" or "percentage".',
        "- Keep every line item, and the details of that line item, as it appears in the PDF.",
        "- companyDetails and clientDetails must be address blocks in this order:",
        "  line 1: street number + street name",
        "  line 2: city, state ZIP",
        "  line 3: phone number only if present",
        "- each item.address must be two lines when possible:",
        "  line 1: street number + street name",
        "  line 2: city, state ZIP",
    ]
)


def build_document_prompt() -> str:
    """Prompt for extracting a record from an attached PDF."""
    return _DOCUMENT_PROMPT


def with_document_text(prompt: str, document_text: str) -> str:
    """Inline a document's text layer for backends that cannot read PDFs."""
    text = (document_text or "").strip()
    if not text:
        return prompt
    return f"{prompt}\nPDF text:\n{text}"


def build_chat_prompt(user_input: str, today: date) -> str:
    """Prompt for turning a free-text request into a record.

    Args:
        user_input: The user's request
        today: Date used to resolve relative dates such as "next Friday"

    Returns:
        Prompt text
    """
    return "\n".join(
        [
            "Convert this user request into invoice JSON and return JSON only.",
            "Use the response schema exactly.",
            "Goal: infer as many fields as possible while staying grounded in provided details.",
            "Rules:",
            "- Prioritize explicit details from the user.",
            '- Infer documentType as "Bid" when quote/estimate/proposal language is used; otherwise "Invoice".',
            "- Infer missing quantity/rate/amount only when two of those values are provided.",
            f"- Resolve relative dates (today/tomorrow/next Friday) using {today.isoformat()} as today.",
            "- invoiceDate must be YYYY-MM-DD when possible, otherwise empty string.",
            "- Normalize companyDetails, clientDetails, and item.address into multiline address blocks when possible.",
            "- Do not invent specific names, street numbers, prices, or dates when they are not implied.",
            "- For unknown text use empty string. For unknown numeric values use 0.",
            "User request:",
            (user_input or "").strip(),
        ]
    )
