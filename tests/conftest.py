import pytest

from architect import ArchitectSettings, DiscordArchitect
from models import CallContext
from tests.fakes import build_guild


@pytest.fixture
def guild():
    return build_guild()


@pytest.fixture
def settings():
    return ArchitectSettings(settle_delay=0)


@pytest.fixture
def architect(guild, settings):
    return DiscordArchitect(guild, settings)


@pytest.fixture
def context(guild):
    """Request made by alice from #general-chat."""
    return CallContext(member=guild.member("alice"), channel=guild.channel("general-chat"))
