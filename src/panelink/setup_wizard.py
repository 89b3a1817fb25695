"""Interactive setup: collect Matrix credentials, verify them, persist both records."""
from __future__ import annotations

import getpass
from typing import Callable, Optional

from .kernel.config import DEFAULT_HOMESERVER, BridgeConfig, load_config, save_config
from .kernel.settings import Settings, save_settings
from .kernel.store import SessionStore
from .paths import settings_path
from .ports.matrix.client import MatrixClient, MatrixError

Prompt = Callable[[str], str]


def _ask(prompt: Prompt, label: str, default: str = "") -> str:
    shown = f"{label} [{default}]: " if default else f"{label}: "
    return (prompt(shown) or "").strip() or default


def run_setup(
    *,
    prompt: Prompt = input,
    secret: Prompt = getpass.getpass,
    client_factory: Callable[[str], MatrixClient] = MatrixClient,
    store: Optional[SessionStore] = None,
) -> int:
    print("\n🔧 panelink setup\n")
    print("Configure the Matrix account that sends notifications and the account that receives them.\n")

    current = load_config()
    homeserver = _ask(prompt, "Matrix homeserver URL", current.homeserver or DEFAULT_HOMESERVER)
    user = _ask(prompt, "Bot account (e.g. @bot:matrix.org)", current.user)
    password = (secret("Bot password: ") or "").strip() or current.password
    recipient = _ask(prompt, "Recipient user ID (who receives notifications)", current.recipient)

    cfg = BridgeConfig(homeserver=homeserver, user=user, password=password, recipient=recipient)
    if not cfg.is_configured():
        print("\n❌ All four values are required.\n")
        return 1

    print("\nTesting Matrix connection...")
    try:
        token, user_id = client_factory(homeserver).login(user, password)
    except MatrixError as e:
        print(f"\n❌ Connection failed: {e}")
        print("   Please check your credentials and try again.\n")
        return 1
    print("✓ Login successful")

    save_config(cfg)
    st = store or SessionStore()
    record = st.load()
    record.access_token = token
    record.user_id = user_id
    st.save(record)
    print("✓ Session saved")
    # Existing tuning is left as the user wrote it.
    if not settings_path().exists():
        save_settings(Settings())
        print(f"✓ Default settings written to {settings_path()}")
    print("\n✅ Configuration complete.\n")
    return 0
