"""
Pytest configuration and shared fixtures.
"""

import pytest
import json
from pathlib import Path
from typing import Dict, Any

from dealscout.engine import Engine


@pytest.fixture
def raw_person() -> Dict[str, Any]:
    """Person record as returned by the discovery API."""
    return {
        "id": "per_001",
        "full_name": "Dana Reyes",
        "seniority": "Executive Level",
        "region": "North America",
        "people_highlights": ["serial_founder", "prior_exit"],
        "experience": [
            {"company_name": "Stripe", "industry": "Fintech"},
            {"company_name": "Ramp", "industry": "Fintech"},
        ],
        "headline": "Serial founder building payments infrastructure",
    }


@pytest.fixture
def raw_company() -> Dict[str, Any]:
    """Company record."""
    return {
        "company_id": "com_042",
        "organization_name": "Acme Robotics",
        "industries": ["Robotics", "AI"],
        "region": "Europe",
        "company_highlights": ["high_growth", "market_leader"],
        "tagline": "Warehouse automation for everyone",
    }


@pytest.fixture
def raw_talent_signal() -> Dict[str, Any]:
    """Talent signal record."""
    return {
        "id": "sig_007",
        "full_name": "Sam Okafor",
        "signal_type": "New Company",
        "new_position_company_name": "Stealth Startup",
        "past_position_company_name": "Google",
        "level_of_seniority": "Senior",
    }


@pytest.fixture
def engine(tmp_path) -> Engine:
    """Open engine on a temporary database."""
    eng = Engine(tmp_path / "test.db").open()
    yield eng
    eng.close()


@pytest.fixture
def entity_file(tmp_path, raw_person) -> Path:
    """Entity JSON file for CLI tests."""
    path = tmp_path / "person.json"
    path.write_text(json.dumps(raw_person))
    return path
