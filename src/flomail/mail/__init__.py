"""Mailbox collaborators and email shapes."""

from flomail.mail.gmail import ConversationPage, GmailMailbox, MailboxError, MailboxProvider, MailMessage
from flomail.mail.models import Draft, EmailAddress, EmailMessage, EmailThread

__all__ = [
    "ConversationPage",
    "Draft",
    "EmailAddress",
    "EmailMessage",
    "EmailThread",
    "GmailMailbox",
    "MailMessage",
    "MailboxError",
    "MailboxProvider",
]
