"""
Example: One lottery round on the simulated chain.

Deploys the lottery, lets three accounts enter, shows the failures a caller
can run into, and has the manager pick a winner.
"""

from datetime import datetime
from lottery import (
    Chain, SeededRandomness, LotteryError, from_wei, to_wei,
)


def show_balances(chain, labels):
    for label, address in labels.items():
        print(f"  {label:<8} {from_wei(chain.get_balance(address)):>12} ether")


def main():
    print("=" * 80)
    print("LOTTERY - One Round")
    print("=" * 80)
    print()

    chain = Chain("demo", accounts=4, randomness=SeededRandomness(7),
                  initial_time=datetime(2024, 1, 1), verbose=False)
    manager, alice, bob, carol = chain.get_accounts()
    labels = {"manager": manager, "alice": alice, "bob": bob, "carol": carol}

    handle = chain.deploy("Lottery", sender=manager)
    print(f"Lottery deployed at {handle.address}")
    print(f"Manager: {chain.call(handle, 'manager')}")
    print()

    print("Step 1: Entries")
    print("-" * 80)
    for label, value in (("alice", "0.02"), ("bob", "0.5"), ("carol", "0.01")):
        chain.send(handle, "enter", sender=labels[label], value=to_wei(value))
        print(f"  {label} entered with {value} ether")
    print(f"  Players: {len(chain.call(handle, 'getPlayers'))}, "
          f"pot: {from_wei(chain.get_pot(handle))} ether")
    print()

    print("Step 2: Calls that fail")
    print("-" * 80)
    attempts = [
        ("alice enters with 10 wei", lambda: chain.send(handle, "enter", sender=alice, value=10)),
        ("bob picks a winner", lambda: chain.send(handle, "pickWinner", sender=bob)),
    ]
    for description, attempt in attempts:
        try:
            attempt()
        except LotteryError as e:
            print(f"  ✗ {description}: {e.condition.value} ({e})")
    print()

    print("Step 3: Draw")
    print("-" * 80)
    receipt = chain.send(handle, "pickWinner", sender=manager)
    (payout,) = receipt.transaction.moves
    winner = next(label for label, address in labels.items() if address == payout.dest)
    print(f"  Winner: {winner}, prize {from_wei(payout.quantity)} ether")
    print(f"  Players after draw: {chain.call(handle, 'getPlayers')}")
    print(f"  Pot after draw: {from_wei(chain.get_pot(handle))} ether")
    print()

    print("Final balances")
    print("-" * 80)
    show_balances(chain, labels)

    result = chain.ledger.verify_double_entry({"WEI": to_wei("0")})
    print()
    print(f"Conservation holds: {result['valid']}")


if __name__ == "__main__":
    main()
