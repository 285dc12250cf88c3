"""WhatsApp greeting and internal assignment message templates."""

from __future__ import annotations

from datetime import date

GREETING_TEMPLATES: dict[tuple[str, bool], str] = {
    ("en", False): (
        "Hello! Thank you for your interest in {venue}. Our representative {employee} "
        "will contact you shortly.\n\n📋 Conversations are recorded for quality purposes."
    ),
    ("en", True): (
        "Hi! Thanks for contacting {venue}. {employee} will reach out soon. 📋 Calls recorded for quality."
    ),
    ("ur", False): (
        "Assalam o Alaikum! {venue} mein inquiry ka shukriya. Hamara representative {employee} "
        "aap se jaldi rabta karega. Shukriya!\n\n📋 Is number pe baat cheet service quality "
        "ke liye record ki jati hai."
    ),
    ("ur", True): (
        "Assalam o Alaikum! {venue} se. {employee} jaldi aap se rabta karega. 📋 Baat cheet record ki jati hai."
    ),
}

ASSIGNED_TEMPLATES: dict[str, str] = {
    "en": "New lead assigned: {client}, {event_date}, {guests}",
    "ur": "Naya lead assign hua: {client}, {event_date}, {guests}",
}


def build_greeting(venue_name: str, employee_name: str, language: str = "ur", short: bool = False) -> str:
    """First WhatsApp message a new lead receives. Unknown languages fall back to English."""
    template = GREETING_TEMPLATES.get((language, short)) or GREETING_TEMPLATES[("en", short)]
    return template.format(venue=venue_name, employee=employee_name)


def build_assignment_message(
    client_name: str,
    event_date: date | None,
    guests: int | None,
    language: str = "en",
) -> str:
    template = ASSIGNED_TEMPLATES.get(language, ASSIGNED_TEMPLATES["en"])
    return template.format(
        client=client_name,
        event_date=event_date.isoformat() if event_date else "Date pending",
        guests=guests if guests else "Guests TBD",
    )
