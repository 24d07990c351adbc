from launchwatch.filters import (
    evaluate,
    matches_watchlist,
    passes_general_filter,
    process_item,
    shares_identity,
)
from launchwatch.models import (
    Actor,
    FilterConfig,
    NormalizedItem,
    Verdict,
    WatchSets,
)
from launchwatch.store.deploys import DeployCountIndex
from launchwatch.store.seen import SeenSet

DEPLOYER = "0xdeaddeaddeaddeaddeaddeaddeaddeaddeadbeef"
TOKEN_A = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1111"
TOKEN_B = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb2222"


def make_item(
    item_id: str = TOKEN_A,
    primary: Actor | None = None,
    secondary: Actor | None = None,
    name: str = "Test Token",
    symbol: str = "TEST",
) -> NormalizedItem:
    return NormalizedItem(
        item_id=item_id,
        network=8453,
        name=name,
        symbol=symbol,
        primary=primary or Actor.build(address=DEPLOYER),
        secondary=secondary,
    )


def test_fresh_item_is_delivered_and_marked_seen() -> None:
    seen = SeenSet()
    counts = DeployCountIndex()
    item = make_item()

    decision = process_item(item, seen, counts, WatchSets(), FilterConfig())

    assert decision.verdict is Verdict.DELIVERED
    assert decision.passes_general_filter is True
    assert decision.is_watch_match is False
    assert seen.contains(f"8453:{TOKEN_A}")


def test_same_item_twice_is_duplicate() -> None:
    seen = SeenSet()
    counts = DeployCountIndex()
    item = make_item()

    process_item(item, seen, counts, WatchSets(), FilterConfig())
    decision = process_item(item, seen, counts, WatchSets(), FilterConfig())

    assert decision.verdict is Verdict.DUPLICATE
    assert len(seen) == 1
    assert counts.count_for(DEPLOYER) == 1


def test_watched_wallet_bypasses_shared_identity_rule() -> None:
    watch = WatchSets(wallet=frozenset({DEPLOYER}))
    config = FilterConfig(require_shared_identity=True)
    item = make_item(item_id=TOKEN_B)

    decision = process_item(item, SeenSet(), DeployCountIndex(), watch, config)

    assert decision.verdict is Verdict.DELIVERED
    assert decision.is_watch_match is True
    assert decision.passes_general_filter is False


def test_max_items_per_actor_counts_current_item() -> None:
    counts = DeployCountIndex({DEPLOYER: {TOKEN_A}})
    config = FilterConfig(max_items_per_actor=1)
    seen = SeenSet([f"8453:{TOKEN_A}"])
    item = make_item(item_id=TOKEN_B)

    decision = process_item(item, seen, counts, WatchSets(), config)

    assert decision.verdict is Verdict.SUPPRESSED
    assert counts.count_for(DEPLOYER) == 2
    # Suppressed items are still marked seen.
    assert seen.contains(item.seen_key)


def test_keyword_matches_case_insensitive_substring() -> None:
    watch = WatchSets(keyword=frozenset({"mooncoin"}))
    item = make_item(name="supermooncoin", symbol="SMC")

    assert matches_watchlist(item, watch) is True


def test_secondary_actor_handles_match_watchlist() -> None:
    watch = WatchSets(fc=frozenset({"dwr.eth"}))
    item = make_item(secondary=Actor.build(fc_handle="DWR.eth"))

    assert matches_watchlist(item, watch) is True


def test_empty_watch_sets_never_match() -> None:
    assert matches_watchlist(make_item(), WatchSets()) is False


def test_shares_identity_on_x_or_farcaster() -> None:
    primary = Actor.build(address=DEPLOYER, x_handle="@Alice")
    assert shares_identity(primary, Actor.build(x_handle="alice")) is True
    assert shares_identity(primary, Actor.build(x_handle="bob")) is False
    assert shares_identity(primary, None) is False

    fc_primary = Actor.build(fc_handle="alice")
    assert shares_identity(fc_primary, Actor.build(fc_handle="ALICE")) is True


def test_max_items_rule_skipped_without_primary_address() -> None:
    item = make_item(primary=Actor())
    counts = DeployCountIndex()
    config = FilterConfig(max_items_per_actor=0)

    assert passes_general_filter(item, counts, config) is True


def test_suppressed_when_neither_rule_nor_watch_passes() -> None:
    config = FilterConfig(require_shared_identity=True)
    decision = evaluate(make_item(), SeenSet(), DeployCountIndex(), WatchSets(), config)

    assert decision.verdict is Verdict.SUPPRESSED
    assert decision.passes_general_filter is False
    assert decision.is_watch_match is False


def test_evaluate_does_not_mutate_state() -> None:
    seen = SeenSet()
    counts = DeployCountIndex()

    evaluate(make_item(), seen, counts, WatchSets(), FilterConfig())

    assert len(seen) == 0
    assert counts.count_for(DEPLOYER) == 0
