"""Template base class and ``{{placeholder}}`` substitution."""

import re

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def fill(text: str | None, variables: dict) -> str | None:
    """Replace ``{{name}}`` with ``variables["name"]``.

    Unknown placeholders are left as written.
    """
    if text is None:
        return None

    def _replace(match):
        name = match.group(1)
        if name in variables and variables[name] is not None:
            return str(variables[name])
        return match.group(0)

    return _PLACEHOLDER.sub(_replace, text)


class BuiltinTemplate:
    """Per-channel content for one kind of notification, shipped with the service.

    Subclasses set the class attributes; ``render`` fills them in.
    """

    template_id: str
    category: str
    email_subject: str
    email_body: str
    push_title: str
    push_message: str

    @classmethod
    def render(cls, variables: dict) -> dict:
        return {
            "subject": fill(cls.email_subject, variables),
            "html": fill(cls.email_body, variables),
            "title": fill(cls.push_title, variables),
            "message": fill(cls.push_message, variables),
        }
