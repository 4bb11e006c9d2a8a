import json
import os
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from .normalizer import to_decimal
from .portfolio import OTHER_ACCOUNTS


@dataclass
class AppConfig:
    charges_total: Optional[Decimal] = None  # overrides the charges table when set
    excluded_accounts: List[str] = field(default_factory=list)
    other_accounts_label: str = OTHER_ACCOUNTS
    reconciliation_dir: Optional[str] = None
    notification_icon: str = "/mainphoto.png"
    notification_badge: str = "/logo192.png"
    notification_url: str = "/"
    csv_dir: Optional[str] = None


def load_config(config_path: str = "portfolio_config.json") -> AppConfig:
    """
    Loads report settings. A missing or unreadable file yields the defaults.
    """
    config = AppConfig()

    if not os.path.exists(config_path):
        logging.info(f"Config file {config_path} not found. Using defaults.")
        return config

    try:
        with open(config_path, 'r') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logging.error(f"Failed to load config file {config_path}: {e}")
        return config

    if not isinstance(data, dict):
        logging.error(f"Config file {config_path} must contain a JSON object")
        return config

    if data.get("charges_total") is not None:
        config.charges_total = to_decimal(data["charges_total"])

    excluded = data.get("excluded_accounts", [])
    if isinstance(excluded, list):
        config.excluded_accounts = [str(a).strip() for a in excluded if str(a).strip()]
    else:
        logging.warning(f"Ignoring excluded_accounts in {config_path}: expected a list")

    for key in ("other_accounts_label", "notification_icon", "notification_badge", "notification_url", "csv_dir"):
        if data.get(key):
            setattr(config, key, str(data[key]))

    if data.get("reconciliation_dir"):
        config.reconciliation_dir = str(data["reconciliation_dir"])

    return config
