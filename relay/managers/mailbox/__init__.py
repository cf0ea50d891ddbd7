from relay.managers.mailbox.mailbox import MailboxManager

__all__ = ["MailboxManager"]
