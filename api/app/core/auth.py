from dataclasses import dataclass

ADMIN_ROLE = "admin"
DEFAULT_ROLE = "applicant"


@dataclass(slots=True, frozen=True)
class Principal:
    subject: str
    role: str = DEFAULT_ROLE
    name: str | None = None
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def parse_bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    token = authorization.split(" ", maxsplit=1)[1].strip()
    return token or None
