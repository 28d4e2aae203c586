"""BDD tests for alert lifecycle behaviour."""

import pytest
from pytest_bdd import scenarios

scenarios("alerts")

pytestmark = [pytest.mark.tier(2), pytest.mark.engine]
