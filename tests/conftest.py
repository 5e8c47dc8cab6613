"""
Fixtures pytest partagées pour Sweeper.

Ce fichier contient :
- PYTHONPATH : racine du repo ajoutée une seule fois pour tous les tests
- structlog : rendu console simple, sans cache (patchs de tests possibles)
- Fixtures d'arborescence : racine de scan, quarantaine, artefacts

Note : l'event loop est géré automatiquement par pytest-asyncio en mode auto.
Voir pyproject.toml pour la configuration.
"""

import sys
from pathlib import Path

import pytest
import structlog

# ==========================================
# PYTHONPATH Setup
# ==========================================

repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))


# ==========================================
# Logging
# ==========================================


@pytest.fixture(scope="session", autouse=True)
def quiet_structlog():
    """structlog muet pendant les tests (rendu sans sortie, pas de cache)."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        logger_factory=structlog.ReturnLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


# ==========================================
# Filesystem fixtures
# ==========================================


@pytest.fixture
def scan_root(tmp_path):
    """Racine de scan vide."""
    root = tmp_path / "data"
    root.mkdir()
    return root


@pytest.fixture
def quarantine_root(tmp_path):
    """Racine de quarantaine (non créée : le pipeline la crée)."""
    return tmp_path / "quarantine"


@pytest.fixture
def artifacts_dir(tmp_path):
    """Dossier pour run log + restore script."""
    directory = tmp_path / "artifacts"
    directory.mkdir()
    return directory
