import random
import uuid
from typing import Dict, Iterable, List, Optional

from constants import DISPLAY_NAME_MAX_CHARS, INVITE_CODE_ALPHABET, INVITE_CODE_LENGTH, INVITE_RESOLVES_OFFLINE
from logging_config import get_logger
from models import Identity

logger = get_logger(__name__)


def normalize_code(code) -> str:
    if not isinstance(code, str):
        return ""
    return code.strip().upper()


def display_name_from(profile: Optional[dict], identity_id: str) -> str:
    profile = profile or {}
    name = profile.get("displayName")
    if not name:
        parts = [profile.get("firstName"), profile.get("lastName")]
        name = " ".join(p.strip() for p in parts if isinstance(p, str) and p.strip())
    if not isinstance(name, str) or not name.strip():
        return f"User_{identity_id[:8]}"
    return name.strip()[:DISPLAY_NAME_MAX_CHARS]


class IdentityDirectory:
    """Identity records and the invite code index.

    An invite code belongs to its identity for the identity's whole life.
    While the identity has no live connections the code is withdrawn from
    the index (it no longer resolves) but stays reserved, so a reconnect
    publishes the very same code again.
    """

    def __init__(self, code_length: int = INVITE_CODE_LENGTH, alphabet: str = INVITE_CODE_ALPHABET,
                 resolve_offline: bool = INVITE_RESOLVES_OFFLINE, rng: random.Random = None):
        self.code_length = code_length
        self.alphabet = alphabet
        self.resolve_offline = resolve_offline
        self._rng = rng or random.SystemRandom()
        self._identities: Dict[str, Identity] = {}
        # every assigned code -> identity id, published or not
        self._reserved: Dict[str, str] = {}
        # codes that currently resolve
        self._published: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._identities)

    def __contains__(self, identity_id) -> bool:
        return identity_id in self._identities

    def get(self, identity_id: str) -> Optional[Identity]:
        return self._identities.get(identity_id)

    def identities(self) -> List[Identity]:
        return list(self._identities.values())

    def generate_code(self) -> str:
        while True:
            code = "".join(self._rng.choice(self.alphabet) for _ in range(self.code_length))
            if code not in self._reserved:
                return code
            logger.debug(f"Invite code collision on {code}, regenerating")

    def register(self, profile: Optional[dict] = None, identity_id: Optional[str] = None) -> Identity:
        if identity_id and identity_id in self._identities:
            return self.reissue_or_keep(self._identities[identity_id], profile)

        identity_id = identity_id or uuid.uuid4().hex
        code = self.generate_code()
        identity = Identity(id=identity_id, displayName=display_name_from(profile, identity_id), inviteCode=code)
        self._identities[identity.id] = identity
        self._reserved[code] = identity.id
        self._published[code] = identity.id
        logger.info(f"Registered identity {identity.id} ({identity.displayName}) with code {code}")
        return identity

    def reissue_or_keep(self, identity: Identity, profile: Optional[dict] = None) -> Identity:
        """Reconnect path: the existing code is kept and published again."""
        current = self._identities.get(identity.id, identity)
        if profile and (profile.get("displayName") or profile.get("firstName") or profile.get("lastName")):
            name = display_name_from(profile, current.id)
            if name != current.displayName:
                current = current.model_copy(update={"displayName": name})
        self._identities[current.id] = current
        self._reserved[current.inviteCode] = current.id
        self._published[current.inviteCode] = current.id
        logger.debug(f"Kept invite code {current.inviteCode} for identity {current.id}")
        return current

    def resolve_invite(self, code) -> Optional[Identity]:
        code = normalize_code(code)
        index = self._reserved if self.resolve_offline else self._published
        identity_id = index.get(code)
        if identity_id is None:
            return None
        return self._identities.get(identity_id)

    def withdraw(self, identity_id: str) -> None:
        identity = self._identities.get(identity_id)
        if identity and self._published.pop(identity.inviteCode, None):
            logger.debug(f"Withdrew invite code {identity.inviteCode} for absent identity {identity_id}")

    def deactivate(self, identity_id: str) -> Optional[Identity]:
        return self._set_active(identity_id, False)

    def activate(self, identity_id: str) -> Optional[Identity]:
        return self._set_active(identity_id, True)

    def _set_active(self, identity_id: str, active: bool) -> Optional[Identity]:
        identity = self._identities.get(identity_id)
        if identity is None:
            return None
        identity = identity.model_copy(update={"active": active})
        self._identities[identity_id] = identity
        logger.info(f"Identity {identity_id} {'activated' if active else 'deactivated'}")
        return identity

    def snapshot(self) -> List[dict]:
        return [identity.model_dump() for identity in self._identities.values()]

    def restore(self, records: Iterable[dict]) -> int:
        """Load identities from a snapshot. Restored codes are reserved, not published."""
        count = 0
        for record in records:
            identity = Identity.model_validate(record)
            owner = self._reserved.get(identity.inviteCode)
            if owner is not None and owner != identity.id:
                logger.warning(f"Snapshot code {identity.inviteCode} of {identity.id} already held by {owner}, reissuing")
                identity = identity.model_copy(update={"inviteCode": self.generate_code()})
            self._identities[identity.id] = identity
            self._reserved[identity.inviteCode] = identity.id
            count += 1
        return count
