"""
Interleaved execution of concurrently running roles.

The roles share nothing but the world gate,
so any interleaving is a legal run:
at every step the world's chooser picks which live role moves next.
A role that aborts stops on its own; the others keep running.

Run as a script to simulate a client, a server and an attacker:
```
python simulation.py --steps 200 --seed 7 --bad 3
```
`DY_STEPS` and `DY_SEED` provide the defaults for `--steps` and `--seed`.
"""

import argparse
from dataclasses import dataclass, field
from os import getenv
from typing import Protocol

from attacker import Attacker
from choice import RandomChooser
from environment import Environment, EventLedger
from errors import ProtocolError
from items import Item, Data, Pair, create_key
from principals import PrincipalRegistry
from roles import Client, ClientState, Server, recording_responder
from world import World

__all__ = [
    "Process",
    "Simulation",
    "Scenario",
    "scenario",
    "main",
]


class Process(Protocol):
    @property
    def finished(self) -> bool: ...

    @property
    def error(self) -> ProtocolError | None: ...

    def step(self) -> bool: ...


@dataclass
class Simulation:
    world: World
    processes: dict[str, Process] = field(default_factory=dict)
    trace: list[tuple[str, str]] = field(default_factory=list)
    failures: dict[str, ProtocolError] = field(default_factory=dict)

    def add(self, name: str, process: Process) -> None:
        assert name not in self.processes, f"Duplicate process {name}"
        self.processes[name] = process

    @property
    def live(self) -> list[str]:
        return [name for name, p in self.processes.items() if not p.finished]

    def step(self) -> str | None:
        """
        Let one live process (chosen by the world's chooser) move.

        :return: the name of the process that moved, `None` if none is live.
        """
        live = self.live
        if not live:
            return None

        name = live[self.world.chooser.choose_action(len(live))]
        process = self.processes[name]
        sent_before = len(self.world.sent)
        process.step()
        for item in self.world.sent[sent_before:]:
            self.trace.append((name, f"sent {item}"))

        if process.finished:
            if process.error is not None:
                self.failures[name] = process.error
                self.trace.append((name, f"aborted: {process.error}"))
            else:
                self.trace.append((name, "finished"))
        return name

    def run(self, steps: int) -> int:
        """
        :return: the number of steps actually taken.
        """
        for taken in range(steps):
            if self.step() is None:
                return taken
        return steps


@dataclass
class Scenario:
    simulation: Simulation
    client: Client
    server: Server
    attacker: Attacker

    def integrity_holds(self) -> bool:
        """
        The client's guarantee:
        an accepted response was really given by the server,
        unless one of the two is bad.
        """
        if self.client.state is not ClientState.DONE:
            return True
        env = self.simulation.world.env
        key = self.client.key
        assert self.client.result is not None
        return (
            env.is_bad(key.creator)
            or env.is_bad(self.client.server)
            or self.simulation.world.ledger.has_response(
                key.creator,
                self.client.server,
                self.client.request,
                self.client.result,
            )
        )


def scenario(
    seed: int | None = None,
    bad: tuple[int, ...] = (),
    request: Item = Data(42),
) -> Scenario:
    """
    A client (principal 0) sharing its first key with a server (principal 1),
    and an attacker acting under fresh personas (principals 2, 3, ...).
    The server answers with `<data(1), request>`.
    """
    registry = PrincipalRegistry()
    client_principal = registry.create_principal()
    server_principal = registry.create_principal()
    key = create_key(client_principal)

    env = Environment(frozenset(bad))
    env = env.share(key.creator, key.seq, server_principal.id)
    ledger = EventLedger()
    world = World(env, ledger, RandomChooser(seed))

    ledger.record_request(client_principal.id, server_principal.id, request)
    client = Client(world, server_principal.id, key, request)
    server = Server(
        server_principal.id,
        key,
        world,
        recording_responder(world, lambda req: Pair(Data(1), req)),
    )
    adversary = Attacker(world, registry)

    simulation = Simulation(world)
    simulation.add("client", client)
    simulation.add("server", server)
    simulation.add("attacker", adversary)
    return Scenario(simulation, client, server, adversary)


def main() -> None:
    ap = argparse.ArgumentParser(description="Simulate the RPC protocol under attack")
    ap.add_argument(
        "--steps", type=int, default=int(getenv("DY_STEPS", "100")), help="steps to run"
    )
    ap.add_argument(
        "--seed",
        type=int,
        default=int(getenv("DY_SEED", "0")),
        help="seed of the random chooser",
    )
    ap.add_argument(
        "--bad",
        type=int,
        action="append",
        default=[],
        help="id of a bad principal (repeatable)",
    )
    ap.add_argument("--request", type=int, default=42, help="value of the request")
    args = ap.parse_args()

    run = scenario(args.seed, tuple(args.bad), Data(args.request))
    taken = run.simulation.run(args.steps)

    for name, event in run.simulation.trace:
        print(f"{name}: {event}")
    print(f"Steps: {taken}")
    print(f"Client: {run.client.state.name.lower()}", end="")
    if run.client.result is not None:
        print(f" with {run.client.result}")
    else:
        print()
    print(f"Server served {len(run.server.served)} request(s)")
    print(f"Attacker personas retired: {len(run.attacker.retired)}")

    if run.integrity_holds():
        print("Checking integrity: passed")
    else:
        print("Checking integrity: failed")
        exit(-1)


if __name__ == "__main__":
    main()
