import re


def fold_text(text: str) -> str:
    """Purpose: Produce the comparison key used for exact KB and reply matching.
    Inputs/Outputs: Input is a raw string; output is the trimmed, lowercased string.
    Side Effects / State: None; pure function.
    Dependencies: None beyond built-ins; called by the matcher, KB index and logging exemptions.
    Failure Modes: Returns an empty string when input is falsy.
    If Removed: Button payloads stop matching KB questions that differ only in case or padding.
    Testing Notes: "  Welcome to Wishfin " and "welcome to wishfin" must fold to the same key.
    """
    # Only case and outer whitespace are ignored; inner text is compared verbatim.
    if not text:
        return ""
    return text.strip().lower()


def mask_contact_value(value: object) -> str:
    """Purpose: Mask phone/email values for safe logging.
    Inputs/Outputs: Input is any value; output keeps the last digits or the e-mail domain only.
    Side Effects / State: None.
    Dependencies: Uses regex digit extraction.
    Failure Modes: Short or non-numeric inputs yield a generic mask.
    If Removed: Logs may expose the contact data collected by the intake form.
    Testing Notes: Verify outputs for phone numbers, e-mails and short strings.
    """
    # E-mails keep their domain, numbers keep the last three digits.
    if value is None:
        return ""
    text = str(value)
    if "@" in text:
        return "***@" + text.split("@", 1)[1]
    digits = re.findall(r"\d", text)
    if len(digits) < 4:
        return "***"
    return "***" + "".join(digits[-3:])
