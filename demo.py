#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Vesting Engine Step by Step

This is a pedagogical demonstration of how token vesting works on the
ledger. Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Foundation      - The token ledger, issuance, the conservation law
  4-7:   Single Grants   - Cliff and linear vesting, release, retry, revocation
  8-10:  Registries      - Many grants in one custody wallet, transfer, reserve
  11:    Factories       - Grants funded from a shared reserve
  12-13: Automation      - LifecycleEngine, scheduled events, time travel
  14:    Finale          - Conservation across everything

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import sys

from vesting import (
    Ledger, Move, build_transaction, token,
    SYSTEM_WALLET, NothingDue, Unauthorized,
    UNIT_TYPE_VESTING, UNIT_TYPE_MULTI_VESTING,
    create_multi_vesting_unit, create_vesting_factory_unit,
    single_vesting, multi_vesting as mv, vesting_factory,
    vesting_contract, multi_vesting_contract,
    LifecycleEngine, begin_event, revoke_event,
    days,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)
    symbol: str = "CRUNCH"
    supply: int = 1_000_000

    # Single grant (step 4)
    grant_amount: int = 1_000
    cliff_days: int = 90
    duration_days: int = 360

    # Registry (step 8)
    registry_funding: int = 10_000
    team: tuple = (("alice", 2_000), ("bob", 3_000), ("charlie", 1_000))


CONFIG = DemoConfig()
TOKEN = CONFIG.symbol

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_balances(ledger: Ledger, wallets):
    for wallet in wallets:
        print(f"  {wallet:<14} {ledger.get_balance(wallet, TOKEN):>12}")


def advance(ledger: Ledger, n_days: int):
    ledger.advance_time(ledger.current_time + timedelta(days=n_days))
    print(f">>> ledger.advance_time(+{n_days} days)   # now {ledger.current_time}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_token_ledger():
    """Create the ledger and the token."""
    step_header(1, "The Token Ledger",
        "A ledger records who holds how many tokens, and when.")

    print("""
    Vesting runs on an ordinary double-entry token ledger:

    1. UNITS   - What can be held (our token, and the vesting units themselves)
    2. WALLETS - Who can hold it (treasury, employees, custody wallets)
    3. TIME    - When things happen (monotonically increasing)

    Token amounts are whole base units. Fractions never exist.
    """)

    wait_for_enter()

    print(f'>>> ledger = Ledger("tutorial", initial_time={CONFIG.start_time!r})')
    ledger = Ledger("tutorial", initial_time=CONFIG.start_time, verbose=True)
    print(f'>>> ledger.register_unit(token("{TOKEN}", "Crunch Token"))')
    ledger.register_unit(token(TOKEN, "Crunch Token"))
    for wallet in ("treasury", "alice", "bob", "charlie", "hr"):
        ledger.register_wallet(wallet)

    section_header("Initial State")
    print(f"Registered wallets: {sorted(ledger.registered_wallets)}")
    print(f"Registered units:   {ledger.list_units()}")
    return ledger


def step_02_issuance(ledger: Ledger):
    """Mint the supply into treasury."""
    step_header(2, "Issuance",
        "Tokens enter through SYSTEM_WALLET; build_transaction is PURE, execute() mutates.")

    print(f"""
>>> ledger.execute(build_transaction(ledger, [
...     Move(Decimal({CONFIG.supply}), "{TOKEN}", SYSTEM_WALLET, "treasury", "mint"),
... ]))
""")
    result = ledger.execute(build_transaction(ledger, [
        Move(Decimal(CONFIG.supply), TOKEN, SYSTEM_WALLET, "treasury", "mint"),
    ]))
    print(f"Result: {result}")
    show_balances(ledger, ["treasury", SYSTEM_WALLET])
    return ledger


def step_03_conservation(ledger: Ledger):
    """Show the conservation law."""
    step_header(3, "The Conservation Law",
        "The sum over ALL wallets, system included, is always zero.")

    print(f"Total supply of {TOKEN}: {ledger.total_supply(TOKEN)}")
    print("""
    Vesting never creates or destroys tokens. It only moves them between
    treasury, custody wallets and beneficiaries. We'll check this at the end.
    """)
    wait_for_enter()
    return ledger


# ============================================================================
# PHASE 2: SINGLE GRANTS (Steps 4-7)
# ============================================================================

def step_04_create_grant(ledger: Ledger):
    """One grant, one unit."""
    step_header(4, "A Single Grant",
        "compute_create builds the unit, its custody wallet and the funding move together.")

    print(f"""
>>> pending = single_vesting.compute_create(
...     ledger, "VEST-ALICE", "{TOKEN}", "treasury", "alice", {CONFIG.grant_amount},
...     cliff_duration=days({CONFIG.cliff_days}), duration=days({CONFIG.duration_days}),
... )
""")
    pending = single_vesting.compute_create(
        ledger, "VEST-ALICE", TOKEN, "treasury", "alice", CONFIG.grant_amount,
        cliff_duration=days(CONFIG.cliff_days), duration=days(CONFIG.duration_days),
    )

    section_header("PendingTransaction (Before Execution)")
    print(f"Units to create:   {[u.symbol for u in pending.units_to_create]}")
    print(f"Wallets to create: {list(pending.wallets_to_create)}")
    for move in pending.moves:
        print(f"Move: {move.quantity} {move.unit_symbol} {move.source} -> {move.dest}")
    print(f"Intent id:         {pending.intent_id}")

    wait_for_enter()
    print(f"Result: {ledger.execute(pending)}")
    show_balances(ledger, ["treasury", "VEST-ALICE"])
    return ledger


def step_05_cliff_and_linear(ledger: Ledger):
    """Nothing before the cliff, then linear."""
    step_header(5, "Cliff and Linear Vesting",
        "vested = total * elapsed / duration, rounded down, and zero before the cliff.")

    start = ledger.current_time
    print(f"{'day':>5} {'vested':>8} {'releasable':>11}")
    for day in (0, 89, 90, 180, 270, 360, 400):
        at = start + timedelta(days=day)
        print(f"{day:>5} {single_vesting.get_vested_amount(ledger, 'VEST-ALICE', at):>8} "
              f"{single_vesting.get_releasable_amount(ledger, 'VEST-ALICE', at):>11}")

    wait_for_enter()
    return ledger


def step_06_release(ledger: Ledger):
    """Release and retry."""
    step_header(6, "Release (and Safe Retry)",
        "Anyone may trigger a release; tokens always go to the beneficiary.")

    section_header("Before the cliff")
    advance(ledger, 30)
    try:
        single_vesting.compute_release(ledger, "VEST-ALICE")
    except NothingDue as exc:
        print(f"NothingDue: {exc}")

    section_header("Half way")
    advance(ledger, 150)
    pending = single_vesting.compute_release(ledger, "VEST-ALICE", caller="bob")
    print(f"First execute:  {ledger.execute(pending)}")
    print(f"Second execute: {ledger.execute(pending)}   # same intent, nothing happens")
    show_balances(ledger, ["alice", "VEST-ALICE"])

    wait_for_enter()
    return ledger


def step_07_revocation(ledger: Ledger):
    """Revoke the single grant."""
    step_header(7, "Revocation",
        "The administrator freezes vesting; the unvested part goes straight back.")

    advance(ledger, 90)
    print(f"Vested now: {single_vesting.get_vested_amount(ledger, 'VEST-ALICE')}")
    try:
        single_vesting.compute_revoke(ledger, "VEST-ALICE", "alice")
    except Unauthorized as exc:
        print(f"alice cannot revoke: {exc}")

    print('>>> ledger.execute(single_vesting.compute_revoke(ledger, "VEST-ALICE", "treasury"))')
    ledger.execute(single_vesting.compute_revoke(ledger, "VEST-ALICE", "treasury"))
    ledger.execute(single_vesting.compute_release(ledger, "VEST-ALICE"))
    show_balances(ledger, ["alice", "treasury", "VEST-ALICE"])

    wait_for_enter()
    return ledger


# ============================================================================
# PHASE 3: REGISTRIES (Steps 8-10)
# ============================================================================

def step_08_registry(ledger: Ledger):
    """A grant registry."""
    step_header(8, "A Grant Registry",
        "Many grants share one custody wallet; grants may never exceed the reserve.")

    ledger.register_unit(create_multi_vesting_unit("TEAM", TOKEN, owner="treasury"))
    ledger.register_wallet("TEAM")
    ledger.execute(build_transaction(ledger, [
        Move(Decimal(CONFIG.registry_funding), TOKEN, "treasury", "TEAM", "fund_team"),
    ]))

    members = [m for m, _ in CONFIG.team]
    amounts = [a for _, a in CONFIG.team]
    print(f">>> mv.compute_vest_multiple(ledger, 'TEAM', 'treasury', {members}, {amounts}, days(30), days(120))")
    print(f"Result: {ledger.execute(mv.compute_vest_multiple(ledger, 'TEAM', 'treasury', members, amounts, days(30), days(120)))}")

    section_header("Reserve accounting")
    print(f"Reserve:           {mv.get_reserve(ledger, 'TEAM')}")
    print(f"Outstanding:       {mv.get_total_supply(ledger, 'TEAM')}")
    print(f"Available reserve: {mv.get_available_reserve(ledger, 'TEAM')}")

    print("""
    Grants created before begin() have no start date. They accrue nothing
    until the administrator starts the registry.
    """)
    ledger.execute(mv.compute_begin_now(ledger, "TEAM", "treasury"))
    print(f"Start date: {mv.get_start_date(ledger, 'TEAM')}")

    wait_for_enter()
    return ledger


def step_09_transfer(ledger: Ledger):
    """Transfer a grant and release everything owned."""
    step_header(9, "Grant Transfer and Release-All",
        "A beneficiary can hand a grant to someone else; release_all pays every grant held.")

    ledger.execute(mv.compute_transfer(ledger, "TEAM", "charlie", "alice", 2))
    print(f"alice owns {mv.get_owned_count(ledger, 'TEAM', 'alice')} grants")

    advance(ledger, 60)
    print(f"alice releasable: {mv.get_releasable_amount_of(ledger, 'TEAM', 'alice')}")
    ledger.execute(mv.compute_release_all(ledger, "TEAM", "alice"))
    show_balances(ledger, ["alice"])

    wait_for_enter()
    return ledger


def step_10_revoke_and_withdraw(ledger: Ledger):
    """Deferred send-back."""
    step_header(10, "Revoke Without Send-Back",
        "A revoked remainder can stay in custody and be withdrawn later.")

    ledger.execute(mv.compute_revoke(ledger, "TEAM", "treasury", 1, send_back_immediately=False))
    print(f"Available reserve after revoke: {mv.get_available_reserve(ledger, 'TEAM')}")
    ledger.execute(mv.compute_withdraw_available_reserve(ledger, "TEAM", "treasury"))
    print(f"Available reserve after withdraw: {mv.get_available_reserve(ledger, 'TEAM')}")
    print(f"bob can still release: {mv.get_releasable_amount(ledger, 'TEAM', 1)}")

    wait_for_enter()
    return ledger


# ============================================================================
# PHASE 4: FACTORIES (Step 11)
# ============================================================================

def step_11_factory(ledger: Ledger):
    """A vesting factory."""
    step_header(11, "The Vesting Factory",
        "A delegate creates grants from a shared reserve; the owner administers them.")

    ledger.register_unit(create_vesting_factory_unit("FACTORY", TOKEN, owner="treasury", creator="hr"))
    ledger.register_wallet("FACTORY")
    ledger.execute(build_transaction(ledger, [
        Move(Decimal(5_000), TOKEN, "treasury", "FACTORY", "fund_factory"),
    ]))

    ledger.execute(vesting_factory.compute_create(
        ledger, "FACTORY", "hr", "VEST-BOB", "bob", 1_200, cliff_duration=0, duration=days(120),
    ))
    print(f"Created grants: {vesting_factory.get_created(ledger, 'FACTORY')}")
    print(f"Factory reserve: {vesting_factory.get_reserve(ledger, 'FACTORY')}")
    print(f"VEST-BOB administrator: {ledger.get_unit_state('VEST-BOB')['owner']}")

    ledger.execute(vesting_factory.compute_empty_reserve(ledger, "FACTORY", "treasury"))
    print(f"Factory reserve after empty: {vesting_factory.get_reserve(ledger, 'FACTORY')}")

    wait_for_enter()
    return ledger


# ============================================================================
# PHASE 5: AUTOMATION (Steps 12-13)
# ============================================================================

def step_12_lifecycle_engine(ledger: Ledger):
    """Automated releases and scheduled events."""
    step_header(12, "The LifecycleEngine",
        "Auto-release units are swept on every step; scheduled events fire on time.")

    ledger.verbose = False
    ledger.register_unit(create_multi_vesting_unit("AUTO", TOKEN, owner="treasury", auto_release=True))
    ledger.register_wallet("AUTO")
    ledger.execute(build_transaction(ledger, [
        Move(Decimal(600), TOKEN, "treasury", "AUTO", "fund_auto"),
    ]))
    ledger.execute(mv.compute_vest(ledger, "AUTO", "treasury", "charlie", 600, 0, days(60)))

    engine = LifecycleEngine(ledger, contracts={
        UNIT_TYPE_VESTING: vesting_contract,
        UNIT_TYPE_MULTI_VESTING: multi_vesting_contract,
    })
    now = ledger.current_time
    engine.schedule(begin_event("AUTO", now + timedelta(days=1)))
    engine.schedule(revoke_event("AUTO", now + timedelta(days=31), grant_id=0))

    for day in range(1, 62, 10):
        executed = engine.step(now + timedelta(days=day))
        print(f"day {day:>3}: {len(executed)} transaction(s), charlie holds {ledger.get_balance('charlie', TOKEN)}")

    wait_for_enter()
    return ledger


def step_13_time_travel(ledger: Ledger):
    """clone_at and replay."""
    step_header(13, "Time Travel",
        "Any past state can be rebuilt from the log.")

    past = ledger.clone_at(CONFIG.start_time + timedelta(days=200))
    section_header("Balances on day 200")
    show_balances(past, ["alice", "bob", "charlie", "treasury"])

    replayed = ledger.replay()
    section_header("Replayed ledger matches")
    for wallet in ("alice", "bob", "charlie", "treasury"):
        same = replayed.get_balance(wallet, TOKEN) == ledger.get_balance(wallet, TOKEN)
        print(f"  {wallet:<10} {'OK' if same else 'DIFFERS'}")

    wait_for_enter()
    return ledger


# ============================================================================
# FINALE (Step 14)
# ============================================================================

def step_14_conservation_finale(ledger: Ledger):
    step_header(14, "Conservation Finale",
        "After every grant, release and revocation the books still balance.")

    show_balances(ledger, sorted(w for w in ledger.registered_wallets))
    total = ledger.total_supply(TOKEN)
    print(f"\nTotal supply (all wallets): {total}")
    print("Conservation holds." if total == 0 else "CONSERVATION VIOLATED")
    print(f"Transactions logged: {len(ledger.transaction_log)}")


def main():
    print("""
    ==================================================================
      TOKEN VESTING ENGINE - INTERACTIVE TUTORIAL
    ==================================================================
    """)
    ledger = step_01_token_ledger()
    step_02_issuance(ledger)
    step_03_conservation(ledger)

    step_04_create_grant(ledger)
    step_05_cliff_and_linear(ledger)
    step_06_release(ledger)
    step_07_revocation(ledger)

    step_08_registry(ledger)
    step_09_transfer(ledger)
    step_10_revoke_and_withdraw(ledger)

    step_11_factory(ledger)

    step_12_lifecycle_engine(ledger)
    step_13_time_travel(ledger)

    step_14_conservation_finale(ledger)


if __name__ == "__main__":
    main()
