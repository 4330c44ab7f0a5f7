import gc
import pytest

from keychain_core.provider import AuthOutcome, SoftwareProvider


class ScriptedAuthenticator:
    """Stands in for the platform prompt: answers with queued outcomes."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or [AuthOutcome.SUCCESS]
        self.prompts = []

    def __call__(self, policy, prompt):
        self.prompts.append((policy, prompt))
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


@pytest.fixture
def authenticator():
    return ScriptedAuthenticator(AuthOutcome.SUCCESS)


@pytest.fixture
def provider(authenticator):
    p = SoftwareProvider(authenticator=authenticator)
    yield p
    gc.collect()
    # every claim handed out was released exactly once
    assert p.live_handles() == 0
    assert p.issued + p.retains == p.releases
