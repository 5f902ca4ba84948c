"""ticketdesk — ticket lifecycle engine for creator-agency work requests."""
