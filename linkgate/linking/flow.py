"""
Credential linking state machine.

    Unlinked --connect--> Pending --callback ok--> Linked
                          Pending --callback failed--> Unlinked
    Linked --disconnect--> Unlinked

`Pending` has no server-side record: it exists only as the signed verifier
cookie held by the browser, which the callback consumes whatever the outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from linkgate.auth.models import Identity
from linkgate.errors import BadRequest, NotLinked
from linkgate.linking import openrouter, pkce
from linkgate.linking.config import LinkingConfig
from linkgate.storage.base import Credential, CredentialPartition

logger = logging.getLogger(__name__)


class LinkState(str, Enum):
    UNLINKED = "unlinked"
    PENDING = "pending"
    LINKED = "linked"


@dataclass(frozen=True)
class ConnectStart:
    authorize_url: str
    cookie_value: str


def link_state(partition: CredentialPartition, *, verifier_cookie: Optional[str]) -> LinkState:
    if partition.exists():
        return LinkState.LINKED
    if verifier_cookie:
        return LinkState.PENDING
    return LinkState.UNLINKED


def start_connect(cfg: LinkingConfig, *, secret: str, identity: Identity, callback_url: str) -> ConnectStart:
    """Mint a fresh PKCE pair; the verifier goes to the cookie, the challenge to the third party."""
    pair = pkce.generate_pair()
    return ConnectStart(
        authorize_url=openrouter.build_authorize_url(cfg, callback_url=callback_url, code_challenge=pair.challenge),
        cookie_value=pkce.seal_verifier(secret, verifier=pair.verifier, owner_id=identity.id),
    )


def complete_connect(
    cfg: LinkingConfig,
    partition: CredentialPartition,
    *,
    secret: str,
    identity: Identity,
    code: Optional[str],
    verifier_cookie: Optional[str],
) -> Credential:
    """
    Finish the flow: exchange the code and replace the stored credential.

    The caller must clear the verifier cookie on every outcome. Nothing is
    written unless the exchange succeeds.
    """
    if not code:
        raise BadRequest("Missing authorization code")
    verifier = pkce.open_verifier(secret, verifier_cookie, owner_id=identity.id, max_age=cfg.verifier_ttl_seconds)
    if not verifier:
        raise BadRequest("Missing PKCE verifier - please start the connection again")

    key = openrouter.exchange_code_for_key(cfg, code=code, code_verifier=verifier)
    partition.set(key)
    logger.info("Linked credential for identity %s", identity.id)
    return Credential(owner_id=identity.id, access_token=key)


def disconnect(partition: CredentialPartition) -> None:
    partition.clear()
    logger.info("Cleared credential for identity %s", partition.owner_id)


def refresh_balance(cfg: LinkingConfig, partition: CredentialPartition) -> int:
    cred = partition.get()
    if cred is None:
        raise NotLinked("No linked credential")
    balance = openrouter.balance_cents(openrouter.fetch_credits(cfg, api_key=cred.access_token))
    if not partition.update_balance(balance):
        # Disconnected while the lookup was in flight.
        raise NotLinked("Credential was removed")
    return balance
