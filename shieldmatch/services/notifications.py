"""Email and SMS notifications for contractor invitations"""

import asyncio
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from shieldmatch.config import Settings
from shieldmatch.schemas.matching import ContractorProfile, ProjectDetails
from shieldmatch.schemas.notifications import DeliveryResult, NotificationChannel

logger = logging.getLogger(__name__)

ACCEPTANCE_WINDOW_HOURS = 48
SMS_DESCRIPTION_LIMIT = 100
MAX_REASONS_IN_MESSAGE = 2
URGENT_PERILS = {"flood", "water"}


def _peril_title(project: ProjectDetails) -> str:
    return project.peril.value.capitalize()


def _preferred_date(project: ProjectDetails) -> str:
    if project.preferred_date is None:
        return "To be scheduled"
    return project.preferred_date.strftime("%m/%d/%Y")


def _preferred_inspection(project: ProjectDetails) -> str:
    if project.preferred_window:
        return f"{_preferred_date(project)} ({project.preferred_window})"
    return _preferred_date(project)


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + "..."
    return text


class EmailTemplate:
    """Email templates for contractor notifications"""

    @staticmethod
    def invitation_subject(project: ProjectDetails) -> str:
        return f"🚨 Urgent {_peril_title(project)} Job - {project.city}, {project.state}"

    @staticmethod
    def invitation_html(
        contractor: ContractorProfile,
        project: ProjectDetails,
        accept_url: str,
        decline_url: str,
        reasons: list[str],
        support_email: str,
    ) -> str:
        """Generate HTML email for a job invitation"""
        subject = EmailTemplate.invitation_subject(project)
        reasons_html = ""
        if reasons:
            items = "".join(
                f'<li style="margin-bottom: 4px;">{html.escape(reason)}</li>'
                for reason in reasons[:MAX_REASONS_IN_MESSAGE]
            )
            reasons_html = f"""
                <div style="background-color: #ecfdf5; border: 1px solid #d1fae5; border-radius: 6px; padding: 15px; margin-bottom: 25px;">
                    <h4 style="margin: 0 0 10px 0; color: #065f46;">🎯 Why you were selected:</h4>
                    <ul style="margin: 0; padding-left: 20px; color: #047857;">{items}</ul>
                </div>"""

        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <meta name="viewport" content="width=device-width, initial-scale=1.0">
            <title>{html.escape(subject)}</title>
        </head>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; margin: 0; padding: 0; background-color: #f3f4f6;">
            <div style="max-width: 600px; margin: 0 auto; background-color: #ffffff; border-radius: 8px; overflow: hidden;">
                <div style="background: linear-gradient(135deg, #dc2626 0%, #ea580c 100%); color: white; padding: 30px; text-align: center;">
                    <h1 style="margin: 0; font-size: 24px;">🚨 URGENT JOB OPPORTUNITY</h1>
                    <p style="margin: 8px 0 0 0;">{_peril_title(project)} damage needs immediate attention</p>
                </div>

                <div style="padding: 30px;">
                    <p>Hello {html.escape(contractor.display_name)},</p>

                    <div style="background-color: #fef3c7; border: 1px solid #f59e0b; border-radius: 6px; padding: 15px; margin-bottom: 25px;">
                        <p style="margin: 0; color: #92400e; font-weight: bold;">⏰ TIME SENSITIVE: First contractor to respond gets the job!</p>
                    </div>

                    <div style="background-color: #f9fafb; border-left: 4px solid #3b82f6; padding: 20px; margin-bottom: 25px;">
                        <h3 style="margin: 0 0 15px 0;">📋 Project Details</h3>
                        <p><strong>📍 Location:</strong> {html.escape(project.address)}, {html.escape(project.city)}, {html.escape(project.state)} {html.escape(project.zip)}</p>
                        <p><strong>⚡ Damage Type:</strong> {_peril_title(project)} damage</p>
                        <p><strong>📅 Preferred Inspection:</strong> {html.escape(_preferred_inspection(project))}</p>
                        <p><strong>📞 Contact:</strong> {html.escape(project.contact_name)} - {html.escape(project.contact_phone)}</p>
                        <p><strong>📝 Description:</strong></p>
                        <p style="font-style: italic; background-color: #ffffff; padding: 10px;">{html.escape(project.description)}</p>
                    </div>
                    {reasons_html}
                    <div style="text-align: center; margin: 30px 0;">
                        <a href="{accept_url}" style="display: inline-block; background-color: #059669; color: white; padding: 15px 40px; text-decoration: none; border-radius: 8px; font-weight: bold; margin-right: 15px;">✅ ACCEPT JOB</a>
                        <a href="{decline_url}" style="display: inline-block; background-color: #6b7280; color: white; padding: 15px 40px; text-decoration: none; border-radius: 8px; font-weight: bold;">❌ DECLINE</a>
                    </div>

                    <div style="background-color: #fef2f2; border: 1px solid #fecaca; border-radius: 6px; padding: 15px;">
                        <p style="margin: 0 0 10px 0; color: #991b1b; font-weight: bold;">⚠️ IMPORTANT REMINDERS:</p>
                        <ul style="margin: 0; padding-left: 20px; color: #991b1b;">
                            <li>This invitation expires in {ACCEPTANCE_WINDOW_HOURS} hours</li>
                            <li>First contractor to accept gets the job</li>
                        </ul>
                    </div>
                    <p style="text-align: center; color: #6b7280; font-size: 14px;"><strong>📞 Questions?</strong> Contact support at {support_email}</p>
                </div>
            </div>
        </body>
        </html>
        """

    @staticmethod
    def invitation_text(
        contractor: ContractorProfile,
        project: ProjectDetails,
        accept_url: str,
        decline_url: str,
        reasons: list[str],
        support_email: str,
    ) -> str:
        """Generate plain text email for a job invitation"""
        lines = [
            EmailTemplate.invitation_subject(project),
            "",
            f"Hello {contractor.display_name},",
            "",
            "⏰ TIME SENSITIVE: First contractor to respond gets the job!",
            "",
            "A new insurance claim has been filed in your service area:",
            "",
            f"📍 Location: {project.address}, {project.city}, {project.state} {project.zip}",
            f"⚡ Damage Type: {_peril_title(project)} damage",
            f"📅 Preferred Inspection: {_preferred_inspection(project)}",
            f"📞 Contact: {project.contact_name} - {project.contact_phone}",
            "",
            f"📝 Description: {project.description}",
        ]
        if reasons:
            lines += ["", "🎯 Why you were selected:"]
            lines += [f"• {reason}" for reason in reasons[:MAX_REASONS_IN_MESSAGE]]
        lines += [
            "",
            f"✅ To accept this job: {accept_url}",
            f"❌ To decline: {decline_url}",
            "",
            "⚠️ IMPORTANT:",
            f"• This invitation expires in {ACCEPTANCE_WINDOW_HOURS} hours",
            "• First contractor to accept gets the job",
            "",
            f"📞 Questions? Contact support at {support_email}",
            "",
            "Best regards,",
            "DisasterShield Team",
        ]
        return "\n".join(lines)

    @staticmethod
    def job_filled_subject(project: ProjectDetails) -> str:
        return f"Job Filled - {project.city}, {project.state}"

    @staticmethod
    def job_filled_text(contractor: ContractorProfile, project: ProjectDetails) -> str:
        return (
            f"Hi {contractor.display_name},\n\n"
            f"The {project.peril.value} damage job in {project.city}, {project.state} has been filled "
            "by another contractor. Thank you for your quick response - more opportunities are coming soon!\n\n"
            "DisasterShield Team"
        )

    @staticmethod
    def job_filled_html(contractor: ContractorProfile, project: ProjectDetails) -> str:
        body = html.escape(EmailTemplate.job_filled_text(contractor, project)).replace("\n", "<br>")
        return f"""
        <!DOCTYPE html>
        <html>
        <head><meta charset="utf-8"><title>{html.escape(EmailTemplate.job_filled_subject(project))}</title></head>
        <body style="font-family: Arial, sans-serif; line-height: 1.6;"><p>{body}</p></body>
        </html>
        """


class SMSTemplate:
    """SMS message templates for contractor notifications"""

    JOB_ALERT = """{emoji} URGENT JOB - {peril} DAMAGE

Hi {contractor_name}, new job in {city}, {state}:

📍 {address}
📞 {contact_name}: {contact_phone}
📅 Preferred: {preferred}

💬 "{description}"{reasons}

⏰ FIRST TO RESPOND GETS THE JOB!

✅ ACCEPT: {accept_url}
❌ DECLINE: {decline_url}

Expires in {hours}hrs. Respond now!
- DisasterShield"""

    JOB_FILLED = """Hi {contractor_name}, the job in {location} has been filled by another contractor. More opportunities coming soon! - DisasterShield"""

    JOB_ACCEPTED = """🎉 Congratulations {contractor_name}! You've been assigned the {peril} damage job at {address}, {city}. Contact: {contact_name} {contact_phone}. Please reach out within 24 hours. - DisasterShield"""

    @classmethod
    def job_alert(
        cls,
        contractor: ContractorProfile,
        project: ProjectDetails,
        accept_url: str,
        decline_url: str,
        reasons: list[str],
    ) -> str:
        reasons_text = ""
        if reasons:
            reasons_text = f"\n\nWhy selected: {', '.join(reasons[:MAX_REASONS_IN_MESSAGE])}"
        return cls.JOB_ALERT.format(
            emoji="🚨" if project.peril.value in URGENT_PERILS else "⚡",
            peril=project.peril.value.upper(),
            contractor_name=contractor.display_name,
            city=project.city,
            state=project.state,
            address=project.address,
            contact_name=project.contact_name,
            contact_phone=project.contact_phone,
            preferred=_preferred_inspection(project),
            description=_truncate(project.description, SMS_DESCRIPTION_LIMIT),
            reasons=reasons_text,
            accept_url=accept_url,
            decline_url=decline_url,
            hours=ACCEPTANCE_WINDOW_HOURS,
        ).strip()


class SMTPEmailTransport:
    """Delivers email over SMTP.

    Without SMTP credentials outside production, messages are logged and
    reported as delivered so local runs exercise the full workflow.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.from_header = f"{settings.from_name} <{settings.from_email}>"

    @property
    def is_simulated(self) -> bool:
        return not self.settings.is_email_configured() and not self.settings.is_production

    def _send_sync(self, message: MIMEMultipart) -> None:
        with smtplib.SMTP(self.settings.smtp_server, self.settings.smtp_port, timeout=30) as server:
            server.starttls()
            server.login(
                self.settings.smtp_username,
                self.settings.smtp_password.get_secret_value(),
            )
            server.send_message(message)

    async def send(self, to: str, subject: str, html_content: str, text_content: str) -> bool:
        """Send one email; returns True when the SMTP server accepted it"""
        if not self.settings.is_email_configured():
            if self.settings.is_production:
                logger.error(f"Email service not configured, cannot send '{subject}' to {to}")
                return False
            logger.info(f"📧 Simulated email to {to}: {subject}")
            return True

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_header
        msg["To"] = to
        msg.attach(MIMEText(text_content, "plain", "utf-8"))
        msg.attach(MIMEText(html_content, "html", "utf-8"))

        try:
            await asyncio.to_thread(self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False

        logger.info(f"Email sent successfully to {to}")
        return True


class TwilioSMSTransport:
    """Delivers SMS through Twilio, with the same simulation rule as email"""

    def __init__(self, settings: Settings, client: Client | None = None):
        self.settings = settings
        self.client = client
        if self.client is None and settings.is_sms_configured():
            self.client = Client(
                settings.twilio_account_sid,
                settings.twilio_auth_token.get_secret_value(),
            )

    def _is_configured(self) -> bool:
        return self.client is not None and self.settings.twilio_phone_number is not None

    @property
    def is_simulated(self) -> bool:
        return not self._is_configured() and not self.settings.is_production

    async def send(self, to: str, body: str) -> bool:
        """Send one SMS; returns True when Twilio accepted the message"""
        if not self._is_configured():
            if self.settings.is_production:
                logger.error(f"Twilio not configured, cannot send SMS to {to}")
                return False
            logger.info(f"📱 Simulated SMS to {to}:\n{body}")
            return True

        try:
            message = await asyncio.to_thread(
                self.client.messages.create,
                body=body,
                from_=self.settings.twilio_phone_number,
                to=to,
            )
        except TwilioException as e:
            logger.error(f"Failed to send SMS to {to}: {e}")
            return False

        logger.info(f"SMS sent to {to}, SID: {message.sid}")
        return True


class EmailInvitationSender:
    """Renders and sends contractor emails"""

    channel = NotificationChannel.EMAIL

    def __init__(self, transport: SMTPEmailTransport, support_email: str):
        self.transport = transport
        self.support_email = support_email

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailInvitationSender":
        return cls(SMTPEmailTransport(settings), settings.support_email)

    async def _deliver(self, to: str | None, subject: str, html_content: str, text_content: str) -> DeliveryResult:
        if not to:
            return DeliveryResult(channel=self.channel, delivered=False, error="no email address on file")
        try:
            delivered = await self.transport.send(to, subject, html_content, text_content)
        except Exception as e:
            logger.error(f"Unexpected error emailing {to}: {e}", exc_info=True)
            return DeliveryResult(channel=self.channel, recipient=to, delivered=False, error=str(e))

        return DeliveryResult(
            channel=self.channel,
            recipient=to,
            delivered=delivered,
            simulated=delivered and self.transport.is_simulated,
            error=None if delivered else "email service issue",
        )

    async def send_invitation(
        self,
        contractor: ContractorProfile,
        project: ProjectDetails,
        accept_url: str,
        decline_url: str,
        reasons: list[str],
    ) -> DeliveryResult:
        """Email a job invitation with accept and decline links"""
        return await self._deliver(
            contractor.email,
            EmailTemplate.invitation_subject(project),
            EmailTemplate.invitation_html(contractor, project, accept_url, decline_url, reasons, self.support_email),
            EmailTemplate.invitation_text(contractor, project, accept_url, decline_url, reasons, self.support_email),
        )

    async def send_job_filled(self, contractor: ContractorProfile, project: ProjectDetails) -> DeliveryResult:
        """Tell a contractor that another contractor took the job"""
        return await self._deliver(
            contractor.email,
            EmailTemplate.job_filled_subject(project),
            EmailTemplate.job_filled_html(contractor, project),
            EmailTemplate.job_filled_text(contractor, project),
        )


class SMSInvitationSender:
    """Renders and sends contractor text messages"""

    channel = NotificationChannel.SMS

    def __init__(self, transport: TwilioSMSTransport):
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "SMSInvitationSender":
        return cls(TwilioSMSTransport(settings))

    async def _deliver(self, to: str | None, body: str) -> DeliveryResult:
        if not to:
            return DeliveryResult(channel=self.channel, delivered=False, error="no phone number on file")
        try:
            delivered = await self.transport.send(to, body)
        except Exception as e:
            logger.error(f"Unexpected error texting {to}: {e}", exc_info=True)
            return DeliveryResult(channel=self.channel, recipient=to, delivered=False, error=str(e))

        return DeliveryResult(
            channel=self.channel,
            recipient=to,
            delivered=delivered,
            simulated=delivered and self.transport.is_simulated,
            error=None if delivered else "SMS service issue",
        )

    async def send_invitation(
        self,
        contractor: ContractorProfile,
        project: ProjectDetails,
        accept_url: str,
        decline_url: str,
        reasons: list[str],
    ) -> DeliveryResult:
        """Text a job alert with accept and decline links"""
        body = SMSTemplate.job_alert(contractor, project, accept_url, decline_url, reasons)
        return await self._deliver(contractor.phone, body)

    async def send_job_filled(self, contractor: ContractorProfile, project: ProjectDetails) -> DeliveryResult:
        body = SMSTemplate.JOB_FILLED.format(
            contractor_name=contractor.display_name,
            location=f"{project.city}, {project.state}",
        )
        return await self._deliver(contractor.phone, body)

    async def send_job_accepted(self, contractor: ContractorProfile, project: ProjectDetails) -> DeliveryResult:
        body = SMSTemplate.JOB_ACCEPTED.format(
            contractor_name=contractor.display_name,
            peril=project.peril.value,
            address=project.address,
            city=project.city,
            contact_name=project.contact_name,
            contact_phone=project.contact_phone,
        )
        return await self._deliver(contractor.phone, body)


def build_senders(settings: Settings) -> list[EmailInvitationSender | SMSInvitationSender]:
    """Senders for every enabled channel, email first"""
    senders: list[EmailInvitationSender | SMSInvitationSender] = []
    if settings.enable_email:
        senders.append(EmailInvitationSender.from_settings(settings))
    if settings.enable_sms:
        senders.append(SMSInvitationSender.from_settings(settings))
    return senders
