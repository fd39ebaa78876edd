"""Confirmation and contact-inquiry emails.

Rendering is pure: :func:`render_confirmation_emails` turns a
:class:`ConfirmationEmailData` into two :class:`OutgoingEmail` values and never
touches the network, and :func:`render_contact_emails` does the same for a
:class:`ContactInquiry`. Delivery goes through a ``Mailer``; :class:`Notifier`
glues the two together. Confirmation failures are logged and swallowed,
contact failures are raised to the caller.
"""
from __future__ import annotations
import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

from jinja2 import Environment, DictLoader, select_autoescape

from . import config
from .errors import NotificationError, ValidationError
from .model.records import Registration, major_units

logger = logging.getLogger(__name__)


TEMPLATES = {
    "participant.html": """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; color: #333;">
  <h2 style="color: #7C3AED; text-align: center;">Thank You for Registering!</h2>
  <p>Dear {{ full_name }},</p>
  <p>Your payment has been successfully processed and your spot in our <strong>{{ event_name }}</strong> is confirmed!</p>
  <div style="background-color: #F5F3FF; padding: 15px; border-radius: 10px; margin: 20px 0;">
    <h3 style="color: #7C3AED; margin-top: 0;">Event Details:</h3>
    <p><strong>Date:</strong> {{ event_date }}</p>
    <p><strong>Time:</strong> {{ event_time }}</p>
    <p><strong>Location:</strong> {{ event_location }}</p>
    <p>We'll send you the joining link and any additional instructions 24 hours before the event.</p>
  </div>
  <p>Your reference ID is <strong>{{ reference_id }}</strong>.</p>
  <p>If you have any questions before the event, feel free to reply to this email.</p>
  <p style="margin-bottom: 0;">Warm regards,</p>
  <p style="margin-top: 5px;"><strong>{{ organizer_name }}</strong></p>
  {% if organizer_tagline %}<p style="color: #7C3AED;">{{ organizer_tagline }}</p>{% endif %}
</div>
""",
    "operator.html": """
<div style="font-family: Arial, sans-serif; padding: 20px; color: #333;">
  <h2 style="color: #7C3AED;">New Registration!</h2>
  <p>A new participant has registered for the {{ event_name }}:</p>
  <ul>
    <li><strong>Full Name:</strong> {{ full_name }}</li>
    <li><strong>Email:</strong> {{ email }}</li>
    <li><strong>Phone:</strong> {{ phone }}</li>
    <li><strong>Reference ID:</strong> {{ reference_id }}</li>
    <li><strong>Transaction ID:</strong> {{ transaction_id }}</li>
    <li><strong>Amount Paid:</strong> {{ amount_display }}</li>
  </ul>
</div>
""",
    "contact_owner.html": """
<div style="font-family: Arial, sans-serif; padding: 20px; max-width: 600px; margin: 0 auto; border: 1px solid #eaeaea; border-radius: 5px;">
  <h2 style="color: #4F46E5; margin-top: 0;">New Inquiry from Website</h2>
  <div style="margin-bottom: 20px; padding: 15px; background-color: #f9fafb; border-radius: 5px;">
    <p><strong>Name:</strong> {{ name }}</p>
    <p><strong>Email:</strong> {{ email }}</p>
    {% if phone %}<p><strong>Phone:</strong> {{ phone }}</p>{% endif %}
    <p><strong>Program Interest:</strong> {{ course_label }}</p>
  </div>
  <div style="background-color: #f0f9ff; padding: 15px; border-radius: 5px;">
    <h3 style="color: #0369a1; margin-top: 0;">Message:</h3>
    <p style="white-space: pre-line;">{{ message }}</p>
  </div>
  <p style="margin-top: 20px; font-size: 14px; color: #6b7280;">This inquiry was submitted from your website's contact form.</p>
</div>
""",
    "contact_ack.html": """
<div style="font-family: Arial, sans-serif; padding: 20px; max-width: 600px; margin: 0 auto; border: 1px solid #eaeaea; border-radius: 5px;">
  <h2 style="color: #4F46E5; margin-top: 0;">Thank You for Your Interest!</h2>
  <p>Dear {{ name }},</p>
  <p>Thank you for inquiring about our {{ course_label }} program. We've received your message and will get back to you shortly.</p>
  <div style="background-color: #f0f9ff; padding: 15px; border-radius: 5px; margin: 20px 0;">
    <h3 style="color: #0369a1; margin-top: 0;">Your Message:</h3>
    <p style="white-space: pre-line;">{{ message }}</p>
  </div>
  {% if owner_email %}<p>If you have any urgent questions, please feel free to reach out directly to <a href="mailto:{{ owner_email }}">{{ owner_email }}</a>.</p>{% endif %}
  <p style="margin-top: 20px;">Warm regards,</p>
  <p><strong>{{ signature_name }}</strong><br>
  {{ signature_title }}</p>
</div>
""",
}

COURSE_LABELS = {
    "beginner": "Beginner Phonics",
    "advanced": "Advanced Pronunciation",
    "professional": "Professional Speaking",
    "custom": "Custom Learning Plan",
}

_env = Environment(
    loader=DictLoader(TEMPLATES),
    autoescape=select_autoescape(["html"]),
)


@dataclass
class ConfirmationEmailData:
    reference_id: str
    full_name: str
    email: str
    phone: str
    transaction_id: str
    amount: int  # minor units
    currency: str
    event_name: str = config.EVENT_NAME
    event_date: str = config.EVENT_DATE
    event_time: str = config.EVENT_TIME
    event_location: str = config.EVENT_LOCATION
    organizer_name: str = config.ORGANIZER_NAME
    organizer_tagline: str = config.ORGANIZER_TAGLINE

    @classmethod
    def from_registration(cls, reg: Registration, amount: int,
                          currency: str) -> "ConfirmationEmailData":
        return cls(
            reference_id=reg.reference_id,
            full_name=reg.full_name,
            email=reg.email,
            phone=reg.phone,
            transaction_id=reg.transaction_id or "",
            amount=amount,
            currency=currency,
        )

    @property
    def amount_display(self) -> str:
        text = major_units(self.amount)
        if self.currency.upper() == "INR":
            return f"₹{text}"
        return f"{text} {self.currency.upper()}"


@dataclass
class OutgoingEmail:
    to: str
    subject: str
    html: str


def render_confirmation_emails(
        data: ConfirmationEmailData, operator_email: str
) -> List[OutgoingEmail]:
    ctx = dict(vars(data), amount_display=data.amount_display)
    return [
        OutgoingEmail(
            to=data.email,
            subject=f"Your Registration is Confirmed! - {data.event_name}",
            html=_env.get_template("participant.html").render(**ctx),
        ),
        OutgoingEmail(
            to=operator_email,
            subject=f"New Registration - {data.event_name}",
            html=_env.get_template("operator.html").render(**ctx),
        ),
    ]


# ----------------------------
# Contact inquiries
# ----------------------------
def course_label(value: Optional[str]) -> str:
    """Display name for a course key; unknown values pass through."""
    return COURSE_LABELS.get(value or "", value or "")


def _optional_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass
class ContactInquiry:
    name: str
    email: str
    message: str
    phone: Optional[str] = None
    course_interest: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ContactInquiry":
        if not isinstance(payload, dict):
            raise ValidationError("Please provide all required fields")
        name = _optional_str(payload, "name")
        email = _optional_str(payload, "email")
        message = _optional_str(payload, "message")
        if not (name and email and message):
            raise ValidationError("Please provide all required fields")
        return cls(
            name=name,
            email=email,
            message=message,
            phone=_optional_str(payload, "phone"),
            course_interest=_optional_str(payload, "courseInterest"),
        )


def render_contact_emails(
        inquiry: ContactInquiry, owner_email: str
) -> List[OutgoingEmail]:
    """Owner notification first, then the acknowledgement to the sender."""
    ctx = dict(
        vars(inquiry),
        course_label=course_label(inquiry.course_interest),
        owner_email=owner_email,
        signature_name=config.CONTACT_SIGNATURE_NAME,
        signature_title=config.CONTACT_SIGNATURE_TITLE,
    )
    return [
        OutgoingEmail(
            to=owner_email,
            subject="New Phonics Program Inquiry",
            html=_env.get_template("contact_owner.html").render(**ctx),
        ),
        OutgoingEmail(
            to=inquiry.email,
            subject="Thank you for your inquiry - Phonics Program",
            html=_env.get_template("contact_ack.html").render(**ctx),
        ),
    ]


# ----------------------------
# Mail transports
# ----------------------------
class SmtpMailer:
    def __init__(
        self,
        host: str = config.SMTP_HOST,
        port: int = config.SMTP_PORT,
        user: str = config.EMAIL_USER,
        password: str = config.EMAIL_PASSWORD,
        use_tls: bool = config.SMTP_USE_TLS,
        timeout: int = config.SMTP_TIMEOUT_SECONDS,
        from_address: Optional[str] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.from_address = from_address or user

    def _build_message(self, mail: OutgoingEmail) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.from_address
        msg["To"] = mail.to
        msg["Subject"] = mail.subject
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(mail.html, subtype="html")
        return msg

    def _send_sync(self, mail: OutgoingEmail) -> None:
        msg = self._build_message(mail)
        if self.port == 465:
            with smtplib.SMTP_SSL(self.host, self.port,
                                  timeout=self.timeout) as server:
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(self.host, self.port,
                              timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)

    async def send(self, mail: OutgoingEmail) -> None:
        await asyncio.to_thread(self._send_sync, mail)


class ConsoleMailer:
    """Development transport: prints instead of sending."""

    async def send(self, mail: OutgoingEmail) -> None:
        print("=" * 50)
        print(f"To: {mail.to}")
        print(f"Subject: {mail.subject}")
        print(mail.html)
        print("=" * 50)


def new_mailer(backend: Optional[str] = None):
    backend = (backend or config.MAIL_BACKEND).lower()
    if backend == "smtp":
        return SmtpMailer()
    return ConsoleMailer()


class Notifier:
    def __init__(self, mailer, *, operator_email: Optional[str] = None,
                 amount: int = config.PROGRAM_FEE,
                 currency: str = config.PROGRAM_CURRENCY) -> None:
        self.mailer = mailer
        self.operator_email = operator_email or config.OPERATOR_EMAIL
        self.amount = amount
        self.currency = currency

    async def _deliver(self, mails: List[OutgoingEmail]) -> None:
        for mail in mails:
            if not mail.to:
                logger.debug("skipping %r: no recipient", mail.subject)
                continue
            try:
                await self.mailer.send(mail)
            except Exception as e:
                raise NotificationError(
                    f"sending {mail.subject!r} failed: {e}"
                ) from e

    async def send_confirmation(self, reg: Registration) -> bool:
        """Best effort: payment state is authoritative, email is not."""
        data = ConfirmationEmailData.from_registration(
            reg, self.amount, self.currency
        )
        try:
            await self._deliver(
                render_confirmation_emails(data, self.operator_email)
            )
        except NotificationError:
            logger.exception(
                "confirmation emails failed for %s", reg.reference_id
            )
            return False
        logger.info("confirmation emails sent for %s", reg.reference_id)
        return True

    async def send_contact(self, inquiry: ContactInquiry) -> None:
        """Unlike confirmations, the sender is waiting on this one."""
        try:
            await self._deliver(
                render_contact_emails(inquiry, self.operator_email)
            )
        except NotificationError as e:
            logger.exception("contact inquiry from %s failed", inquiry.email)
            raise NotificationError(
                "Failed to send your message. Please try again later."
            ) from e
        logger.info("contact inquiry from %s sent", inquiry.email)
