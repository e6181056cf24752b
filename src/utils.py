"""Shared utilities used across the booking assistant."""


def contact_from_address(address: str) -> str:
    """Derive a contact number from a chat address by stripping its domain suffix.

    Examples:
        >>> contact_from_address("5491122334455@c.us")
        '5491122334455'
        >>> contact_from_address("  5491122334455  ")
        '5491122334455'
    """
    return address.strip().split("@", 1)[0]
