import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from html import escape

from bson import ObjectId
from pymongo.database import Database

from config import settings

logger = logging.getLogger(__name__)


def _price(item: dict) -> str:
    price = item.get("price_at_time")
    if not price:
        return "Price on request"
    if float(price).is_integer():
        price = int(price)
    return f"₹{price}"


def render_enquiry_html(enquiry: dict) -> str:
    rows = ""
    for i, it in enumerate(enquiry.get("items", []), start=1):
        rows += (
            "<tr>"
            f'<td style="padding:10px;border:1px solid #ddd">{i}</td>'
            f'<td style="padding:10px;border:1px solid #ddd">{escape(it.get("title") or "")}</td>'
            f'<td style="padding:10px;border:1px solid #ddd">{escape(it.get("selected_color_texture") or "N/A")}</td>'
            f'<td style="padding:10px;border:1px solid #ddd">{it.get("quantity") or 1}</td>'
            f'<td style="padding:10px;border:1px solid #ddd">{_price(it)}</td>'
            "</tr>"
        )
    return f"""
    <h2>New Enquiry</h2>
    <p><strong>Enquiry ID:</strong> {enquiry.get("enquiry_id")}</p>
    <p><strong>Name:</strong> {escape(enquiry.get("user_name") or "")}</p>
    <p><strong>Phone:</strong> {escape(enquiry.get("user_phone") or "")}</p>
    <p><strong>Email:</strong> {escape(enquiry.get("user_email") or "Not provided")}</p>
    <p><strong>Address:</strong> {escape(enquiry.get("user_address") or "Not provided")}</p>
    <table style="border-collapse:collapse">
      <tr><th>#</th><th>Product</th><th>Color/Texture</th><th>Qty</th><th>Price</th></tr>
      {rows}
    </table>
    """


def render_enquiry_text(enquiry: dict) -> str:
    lines = [
        "NEW ENQUIRY RECEIVED",
        "",
        "Customer Details:",
        f"Name: {enquiry.get('user_name')}",
        f"Phone: {enquiry.get('user_phone')}",
        f"Email: {enquiry.get('user_email') or 'Not provided'}",
        f"Address: {enquiry.get('user_address') or 'Not provided'}",
        "",
        f"Enquiry ID: {enquiry.get('enquiry_id')}",
        f"Date: {datetime.now():%d %b %Y %H:%M}",
        "",
        "Products Enquired:",
    ]
    for i, it in enumerate(enquiry.get("items", []), start=1):
        lines.append(f"{i}. {it.get('title')}")
        lines.append(f"   Color/Texture: {it.get('selected_color_texture') or 'N/A'}")
        lines.append(f"   Quantity: {it.get('quantity') or 1}")
        lines.append(f"   Price: {_price(it)}")
    lines += ["", "---", "Automated email from Furnishing Catalogue System"]
    return "\n".join(lines)


class EnquiryMailer:
    """Sends enquiry notifications to the shop owner over SMTP."""

    def __init__(self, host=None, port=None, user=None, password=None,
                 from_email=None, from_name=None, to_email=None, timeout=30):
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.user = user if user is not None else settings.SMTP_USER
        self.password = password if password is not None else settings.SMTP_PASS
        self.from_email = from_email or settings.FROM_EMAIL
        self.from_name = from_name or settings.FROM_NAME
        self.to_email = to_email or settings.OWNER_EMAIL
        self.timeout = timeout

    def build_message(self, enquiry: dict) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"New Enquiry from {enquiry.get('user_name')} - {enquiry.get('enquiry_id')}"
        msg["From"] = formataddr((self.from_name, self.from_email))
        msg["To"] = self.to_email
        msg.attach(MIMEText(render_enquiry_text(enquiry), "plain", "utf-8"))
        msg.attach(MIMEText(render_enquiry_html(enquiry), "html", "utf-8"))
        return msg

    def send_enquiry_email(self, enquiry: dict) -> None:
        """Send the notification; raises on any SMTP or configuration problem."""
        if not (self.host and self.to_email):
            raise RuntimeError("SMTP is not configured")
        msg = self.build_message(enquiry)
        # port 465 is implicit TLS, anything else negotiates STARTTLS
        if self.port == 465:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        with server:
            if self.port != 465:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.sendmail(self.from_email, [self.to_email], msg.as_string())
        logger.info("Enquiry email sent for %s", enquiry.get("enquiry_id"))


_mailer = None


def get_mailer() -> EnquiryMailer:
    global _mailer
    if _mailer is None:
        _mailer = EnquiryMailer()
    return _mailer


def dispatch_enquiry_email(db: Database, mailer: EnquiryMailer, enquiry_id: ObjectId, enquiry: dict) -> None:
    """Background task: send the email once and record success on the enquiry.

    Failures are logged and leave email_sent false; there is no retry.
    """
    try:
        mailer.send_enquiry_email(enquiry)
    except Exception:
        logger.exception("Background mail error for enquiry %s", enquiry_id)
        return
    db["enquiry"].update_one({"_id": enquiry_id}, {"$set": {"email_sent": True}})
