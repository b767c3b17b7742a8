"""MIME message assembly for batch sends and inline image extraction."""
import base64
import re
import uuid
from dataclasses import dataclass
from email.headerregistry import Address
from email.message import EmailMessage
from email.utils import make_msgid
from typing import List, Optional, Tuple

DATA_URI_IMG_RE = re.compile(
    r"""<img\s+[^>]*src=["']data:([^;"']+);base64,([^"']+)["'][^>]*>""",
    re.IGNORECASE,
)
SRC_DATA_RE = re.compile(r"""src=["']data:[^"']+["']""", re.IGNORECASE)


@dataclass
class InlineImage:
    """An image referenced from the html body as ``cid:<content_id>``."""
    content_id: str
    filename: str
    mime_type: str
    base64_data: str


def extract_inline_images(html: str) -> Tuple[str, List[InlineImage]]:
    """Replace ``data:`` URI images with ``cid:`` references.

    Returns the rewritten html and the extracted images, in document order.
    """
    images: List[InlineImage] = []

    def _replace(match: "re.Match") -> str:
        mime_type, data = match.group(1), match.group(2)
        index = len(images) + 1
        content_id = f"img_{uuid.uuid4().hex[:12]}_{index}"
        extension = mime_type.split("/")[-1] or "png"
        images.append(InlineImage(
            content_id=content_id,
            filename=f"image_{index}.{extension}",
            mime_type=mime_type,
            base64_data=data,
        ))
        return SRC_DATA_RE.sub(f'src="cid:{content_id}"', match.group(0), count=1)

    return DATA_URI_IMG_RE.sub(_replace, html), images


def render_body(html_body: str, signature: Optional[str] = None) -> str:
    """Append the html signature block under the body."""
    if not signature:
        return html_body
    return (
        html_body
        + '<div style="margin-top:20px;padding-top:12px;border-top:1px solid #cccccc;">'
        + signature
        + '</div>'
    )


def build_message(
    sender: str,
    to_email: str,
    bcc: List[str],
    subject: str,
    html_body: str,
    signature: Optional[str] = None,
    inline_images: Optional[List[InlineImage]] = None
) -> EmailMessage:
    """Build an html message; Bcc recipients never see each other."""
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to_email
    if bcc:
        msg["Bcc"] = ", ".join(bcc)
    msg["Subject"] = subject
    domain = Address(addr_spec=sender).domain if "@" in sender else None
    msg["Message-ID"] = make_msgid(domain=domain)

    msg.set_content(render_body(html_body, signature), subtype="html", charset="utf-8")

    for image in inline_images or []:
        maintype, _, subtype = image.mime_type.partition("/")
        msg.add_related(
            base64.b64decode(image.base64_data),
            maintype=maintype or "image",
            subtype=subtype or "png",
            cid=f"<{image.content_id}>",
            filename=image.filename,
            disposition="inline",
        )
    return msg


def encode_raw(msg: EmailMessage) -> str:
    """Base64url encoding of the full message, as the Gmail API expects in ``raw``."""
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")
