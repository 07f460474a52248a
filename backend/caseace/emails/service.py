"""Outgoing mail over SMTP.

``smtplib`` is blocking, so delivery runs in a worker thread. With no
``SMTP_HOST`` configured the message is logged instead of sent, which is
how local development and the test suite run.
"""

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from html import escape

from caseace.config import settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    pass


def _format_cents(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def _send_sync(to_email: str, subject: str, html: str) -> None:
    msg = EmailMessage()
    msg["From"] = settings.smtp_from
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content("This message requires an HTML-capable mail client.")
    msg.add_alternative(html, subtype="html")

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
        server.ehlo()
        if settings.smtp_use_tls:
            server.starttls(context=ssl.create_default_context())
            server.ehlo()
        if settings.smtp_user and settings.smtp_password:
            server.login(settings.smtp_user, settings.smtp_password)
        server.send_message(msg)


async def send_email(to_email: str, subject: str, html: str) -> None:
    if not settings.smtp_host:
        logger.info("[MOCK EMAIL] To=%s | Subject=%s", to_email, subject)
        return
    try:
        await asyncio.to_thread(_send_sync, to_email, subject, html)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("SMTP send to %s failed: %s", to_email, exc)
        raise EmailDeliveryError(str(exc)) from exc
    logger.info("[SMTP EMAIL] To=%s | Subject=%s", to_email, subject)


def render_invoice_email(invoice) -> str:
    rows = []
    for entry in invoice.time_entries:
        hours = (entry.duration_minutes or 0) / 60
        rows.append(
            "<tr>"
            f"<td>{entry.start_time:%Y-%m-%d}</td>"
            f"<td>{escape(entry.description)}</td>"
            f"<td>{hours:.2f}</td>"
            f"<td>{_format_cents(entry.billable_amount_cents or 0)}</td>"
            "</tr>"
        )
    for expense in invoice.expenses:
        rows.append(
            "<tr>"
            f"<td>{expense.expense_date:%Y-%m-%d}</td>"
            f"<td>{escape(expense.description)}</td>"
            "<td>-</td>"
            f"<td>{_format_cents(expense.amount_cents)}</td>"
            "</tr>"
        )

    return f"""
    <html>
      <body style="font-family: Arial, sans-serif;">
        <h2>Invoice {escape(invoice.invoice_number)}</h2>
        <p>Dear {escape(invoice.client.name)},</p>
        <p>Please find below the invoice for <strong>{escape(invoice.case.case_name)}</strong>.</p>
        <p>Issue date: {invoice.issue_date:%Y-%m-%d}<br>Due date: {invoice.due_date:%Y-%m-%d}</p>
        <table border="1" cellpadding="6" cellspacing="0">
          <tr><th>Date</th><th>Description</th><th>Hours</th><th>Amount</th></tr>
          {"".join(rows)}
        </table>
        <p>Subtotal: {_format_cents(invoice.subtotal_cents)}<br>
           Tax: {_format_cents(invoice.tax_cents)}<br>
           <strong>Total: {_format_cents(invoice.total_cents)}</strong></p>
      </body>
    </html>
    """


def render_credentials_email(client_name: str, client_email: str, password: str, case_name: str) -> str:
    return f"""
    <html>
      <body style="font-family: Arial, sans-serif;">
        <h2>Welcome to the CaseAce client portal</h2>
        <p>Dear {escape(client_name)},</p>
        <p>An account has been created for you in connection with <strong>{escape(case_name)}</strong>.</p>
        <p>Email: {escape(client_email)}<br>Temporary password: <code>{escape(password)}</code></p>
        <p>Sign in at <a href="{settings.portal_url}">{settings.portal_url}</a> and change your password.</p>
      </body>
    </html>
    """


async def send_invoice_email(invoice) -> str:
    subject = f"Invoice {invoice.invoice_number} - {invoice.case.case_name}"
    await send_email(invoice.client.email, subject, render_invoice_email(invoice))
    return invoice.client.email


async def send_login_credentials(client_email: str, client_name: str, password: str, case_name: str) -> None:
    html = render_credentials_email(client_name, client_email, password, case_name)
    await send_email(client_email, "Your Legal Portal Access - Login Credentials", html)
