"""
MIME parsing for raw emails delivered by SES.

Only text is extracted. Attachments are listed by name; their content is
never read.
"""

import logging
from email import policy
from email.parser import BytesParser
from typing import Dict, Any

logger = logging.getLogger(__name__)

# Headers kept for threading and prompt metadata
THREADING_HEADERS = ('From', 'To', 'Subject', 'Date', 'Message-ID', 'In-Reply-To', 'References')


def _decode_text_part(part) -> str:
    try:
        # get_content() handles quoted-printable, base64, etc automatically
        return part.get_content()
    except Exception as e:
        logger.warning(f"Failed to decode {part.get_content_type()} with get_content(): {e}")
        payload = part.get_payload(decode=True)
        return payload.decode('utf-8', errors='ignore') if payload else ''


def extract_email_body(email_content: bytes) -> Dict[str, Any]:
    """
    Parse raw email (MIME format) and extract bodies and attachment names.

    Args:
        email_content: Raw email bytes from S3

    Returns:
        Dictionary with text_body, html_body and attachments
        (each {filename, content_type, size})

    Example:
        >>> result = extract_email_body(b"From: a@example.com\\r\\n\\r\\nHello World")
        >>> result['text_body']
        'Hello World'
    """
    msg = BytesParser(policy=policy.default).parsebytes(email_content)

    result = {
        'text_body': '',
        'html_body': '',
        'attachments': []
    }

    if msg.is_multipart():
        for part in msg.walk():
            content_type = part.get_content_type()
            content_disposition = str(part.get("Content-Disposition", ""))
            filename = part.get_filename()

            if filename and (
                "attachment" in content_disposition
                or "inline" in content_disposition
                or content_type.startswith(('image/', 'application/'))
            ):
                payload = part.get_payload(decode=True) or b''
                result['attachments'].append({
                    'filename': filename,
                    'content_type': content_type,
                    'size': len(payload),
                })
            elif content_type == "text/plain" and not result['text_body']:
                result['text_body'] = _decode_text_part(part)
            elif content_type == "text/html" and not result['html_body']:
                result['html_body'] = _decode_text_part(part)
    else:
        content_type = msg.get_content_type()
        if content_type == "text/plain":
            result['text_body'] = _decode_text_part(msg)
        elif content_type == "text/html":
            result['html_body'] = _decode_text_part(msg)
        else:
            logger.warning(
                f"Unknown content type for non-multipart email: {content_type}. "
                f"Email body will be empty."
            )

    return result


def parse_email_headers(email_content: bytes) -> Dict[str, str]:
    """
    Parse the headers used for prompt metadata and threading.

    Args:
        email_content: Raw email bytes (RFC 822)

    Returns:
        dict: Non-empty headers among THREADING_HEADERS

    Raises:
        ValueError: If email content is empty
    """
    if not email_content:
        raise ValueError("Email content cannot be empty")

    msg = BytesParser(policy=policy.default).parsebytes(email_content, headersonly=True)

    headers = {}
    for name in THREADING_HEADERS:
        value = msg.get(name)
        if value:
            headers[name] = str(value)

    logger.debug(f"Parsed email headers: {list(headers.keys())}")
    return headers
