"""Services for ClaimFlow: directory, mail delivery, notifications and chat."""
