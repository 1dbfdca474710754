"""
Centralized settings and path configuration for the configurator.
"""
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    # Walk up from this file to find the project root
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # Static catalog definitions
    catalog_file: Path

    # JSON file mirroring the store state
    state_file: Path

    # Key the whole state tree is stored under
    storage_key: str = 'colo-configurator-store'

    # Location context copied into new configurations
    default_ibx: str = 'MB2'
    default_cage: str = 'A-101'
    ibx_options: tuple = ('MB1', 'MB2', 'MB3', 'MB4', 'MB5', 'MB6')
    cage_options: tuple = (
        'MB1:0001', 'MB1:0002', 'MB2:0001', 'MB2:0002', 'MB3:0001', 'MB3:0002',
    )

    # Quote defaults
    currency: str = 'USD'
    quote_validity_days: int = 30
    initial_term_months: int = 24
    renewal_period_months: int = 12
    non_renewal_notice_days: int = 90
    customer_info: dict = field(default_factory=lambda: {
        'name': 'John Smith',
        'email': 'john.smith@company.com',
        'company': 'Tech Solutions Inc.',
    })

    # One-time charge used when a cart/package row carries none
    default_product_one_time: float = 500
    default_package_one_time: float = 750

    # Per-configuration orders are canonical; the quote-level order is kept for compatibility
    spawn_order_per_configuration: bool = True

    log_level: str = 'INFO'

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and environment."""
        root = project_root or get_project_root()
        package_dir = Path(__file__).resolve().parent.parent

        state_file = os.getenv('COLO_STATE_FILE')

        return cls(
            project_root=root,
            catalog_file=package_dir / 'data' / 'catalog.json',
            state_file=Path(state_file) if state_file else root / 'state' / 'store.json',
            log_level=os.getenv('COLO_LOG_LEVEL', 'INFO').upper(),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
