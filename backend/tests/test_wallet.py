import asyncio

import pytest

from organchain.core.errors import UserRejected, WalletUnavailable
from organchain.services.wallet import (
    EventFeed,
    IdentityHolder,
    InMemoryWallet,
    WalletIdentityProvider,
)

ALICE = "0xab" + "0" * 36 + "12"
BOB = "0x" + "b" * 40


class TestEventFeed:

    def test_unsubscribe_stops_delivery(self):
        feed = EventFeed()
        seen = []
        sub = feed.subscribe(seen.append)
        feed.emit(1)
        sub.unsubscribe()
        feed.emit(2)
        assert seen == [1]
        assert feed.listener_count == 0
        assert not sub.active

    def test_unsubscribe_twice_is_harmless(self):
        feed = EventFeed()
        sub = feed.subscribe(lambda _: None)
        sub.unsubscribe()
        sub.unsubscribe()
        assert feed.listener_count == 0

    def test_context_manager_releases(self):
        feed = EventFeed()
        with feed.subscribe(lambda _: None):
            assert feed.listener_count == 1
        assert feed.listener_count == 0

    def test_failing_listener_does_not_block_others(self):
        feed = EventFeed()
        seen = []

        def broken(_):
            raise RuntimeError("boom")

        feed.subscribe(broken)
        feed.subscribe(seen.append)
        feed.emit("x")
        assert seen == ["x"]


class TestWalletIdentityProvider:

    def setup_method(self):
        self.backend = InMemoryWallet(accounts=[ALICE, BOB])
        self.holder = IdentityHolder()
        self.provider = WalletIdentityProvider(self.backend, self.holder)
        self.events = []
        self.provider.subscribe(self.events.append)

    def test_connect_binds_first_account(self):
        identity = asyncio.run(self.provider.connect())
        assert identity.address == ALICE
        assert identity.signer.address == ALICE
        assert self.provider.current_identity() is identity
        assert self.events == []

    def test_connect_without_wallet(self):
        self.backend.installed = False
        with pytest.raises(WalletUnavailable):
            asyncio.run(self.provider.connect())
        assert self.provider.current_identity() is None

    def test_connect_rejected_by_user(self):
        self.backend.reject_connect = True
        with pytest.raises(UserRejected):
            asyncio.run(self.provider.connect())

    def test_connect_with_no_accounts(self):
        provider = WalletIdentityProvider(InMemoryWallet(accounts=[]))
        with pytest.raises(WalletUnavailable):
            asyncio.run(provider.connect())

    def test_resume_requires_prior_authorization(self):
        assert asyncio.run(self.provider.resume()) is None
        asyncio.run(self.provider.connect())
        assert asyncio.run(self.provider.resume()).address == ALICE

    def test_reconnect_same_account_keeps_identity(self):
        first = asyncio.run(self.provider.connect())
        second = asyncio.run(self.provider.connect())
        assert first is second

    def test_switch_replaces_identity_and_signer(self):
        first = asyncio.run(self.provider.connect())
        self.backend.switch_account(BOB)
        current = self.provider.current_identity()
        assert current.address == BOB
        assert current.signer != first.signer
        assert self.events == [current]
        assert not self.holder.is_current(first)

    def test_switch_back_yields_fresh_session(self):
        first = asyncio.run(self.provider.connect())
        self.backend.switch_account(BOB)
        self.backend.switch_account(ALICE)
        again = self.provider.current_identity()
        assert again.address == first.address
        assert again is not first
        assert again.signer.session != first.signer.session

    def test_switch_before_connect_is_silent(self):
        self.backend.switch_account(BOB)
        assert self.events == []
        assert self.provider.current_identity() is None

    def test_disconnect_clears_identity(self):
        asyncio.run(self.provider.connect())
        self.backend.disconnect()
        assert self.provider.current_identity() is None
        assert self.events == [None]

    def test_signer_reflects_wallet_approval(self):
        identity = asyncio.run(self.provider.connect())
        assert asyncio.run(identity.signer.approve("registerDonor")) is True
        self.backend.reject_signatures = True
        assert asyncio.run(identity.signer.approve("registerDonor")) is False

    def test_close_detaches_from_backend(self):
        asyncio.run(self.provider.connect())
        self.provider.close()
        assert self.backend.account_changes.listener_count == 0
        self.backend.switch_account(BOB)
        assert self.provider.current_identity().address == ALICE
