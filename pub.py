"""
The `pub` predicate:
an upper bound on the items that may appear on the public network.

`pub` has to be weak enough to admit every legitimate send
(by the client, the server and the attacker alike)
and strong enough that a successfully verified hash
forces the corresponding `request`/`response` event,
unless one of the principals owning the key is bad:
- a key is public iff its creator or its partner is bad;
- data is always public;
- a hash is public iff its key is public,
  or it covers `<data(0), req>` and `request(creator, partner, req)` happened,
  or it covers `<data(1), <req, resp>>` and `response(creator, partner, req, resp)` happened;
- a pair is public iff both components are.

`pub` evaluates a concrete item against an environment and ledger;
`symbolic_pub` gives the same definition as a z3 recursive function.
"""

import itertools

import z3

from environment import Environment, EventLedger, NOT_SHARED
from items import Item, Key, Data, Hmac, Pair, ItemSort

__all__ = [
    "pub",
    "key_is_public",
    "hmac_event",
    "symbolic_pub",
    "symbolic_environment",
    "REQUEST_TAG",
    "RESPONSE_TAG",
]

REQUEST_TAG = 0
RESPONSE_TAG = 1


def key_is_public(env: Environment, creator: int, seq: int) -> bool:
    return env.is_bad(creator) or env.is_bad(env.shared_with(creator, seq))


def pub(env: Environment, ledger: EventLedger, item: Item) -> bool:
    match item:
        case Key(creator, seq):
            return key_is_public(env, creator, seq)
        case Data():
            return True
        case Hmac(creator, seq, payload):
            return key_is_public(env, creator, seq) or _event_happened(
                env, ledger, creator, seq, payload
            )
        case Pair(first, second):
            return pub(env, ledger, first) and pub(env, ledger, second)
    assert False, f"Unknown item {item!r}"


def _event_happened(
    env: Environment, ledger: EventLedger, creator: int, seq: int, payload: Item
) -> bool:
    partner = env.shared_with(creator, seq)
    match payload:
        case Pair(Data(0), request):  # REQUEST_TAG
            return ledger.has_request(creator, partner, request)
        case Pair(Data(1), Pair(request, response)):  # RESPONSE_TAG
            return ledger.has_response(creator, partner, request, response)
    return False


def hmac_event(
    creator: z3.ArithRef,
    seq: z3.ArithRef,
    payload: z3.DatatypeRef,
    shared_with: z3.FuncDeclRef,
    request: z3.FuncDeclRef,
    response: z3.FuncDeclRef,
) -> z3.BoolRef:
    """
    The event disjunct of `pub` for `hmac(creator, seq, payload)`.
    """
    partner = shared_with(creator, seq)
    tag = ItemSort.pair_first(payload)
    body = ItemSort.pair_second(payload)
    return z3.And(
        ItemSort.is_pair(payload),
        ItemSort.is_data(tag),
        z3.Or(
            z3.And(
                ItemSort.data_value(tag) == REQUEST_TAG,
                request(creator, partner, body),
            ),
            z3.And(
                ItemSort.data_value(tag) == RESPONSE_TAG,
                ItemSort.is_pair(body),
                response(
                    creator,
                    partner,
                    ItemSort.pair_first(body),
                    ItemSort.pair_second(body),
                ),
            ),
        ),
    )


_pub_cache: dict[tuple[z3.FuncDeclRef, ...], z3.FuncDeclRef] = {}


def symbolic_pub(
    bad: z3.FuncDeclRef,
    shared_with: z3.FuncDeclRef,
    request: z3.FuncDeclRef,
    response: z3.FuncDeclRef,
) -> z3.FuncDeclRef:
    """
    Define `pub` as a z3 recursive function over `ItemSort`.

    :param bad: `Int -> Bool`
    :param shared_with: `Int x Int -> Int`
    :param request: `Int x Int x Item -> Bool`
    :param response: `Int x Int x Item x Item -> Bool`
    :return: the declaration of `pub : Item -> Bool`.
    The same declaration is returned for the same four arguments,
    so pre- and post-states of a transition system share one definition.
    """
    cache_key = (bad, shared_with, request, response)
    if cache_key in _pub_cache:
        return _pub_cache[cache_key]

    name = f"pub_{len(_pub_cache)}" if _pub_cache else "pub"
    pub_fun = z3.RecFunction(name, ItemSort, z3.BoolSort())
    i = z3.Const("i", ItemSort)

    def leaked(creator: z3.ArithRef, seq: z3.ArithRef) -> z3.BoolRef:
        return z3.Or(bad(creator), bad(shared_with(creator, seq)))

    creator = ItemSort.hmac_creator(i)
    seq = ItemSort.hmac_seq(i)
    body = z3.If(
        ItemSort.is_key(i),
        leaked(ItemSort.key_creator(i), ItemSort.key_seq(i)),
        z3.If(
            ItemSort.is_data(i),
            z3.BoolVal(True),
            z3.If(
                ItemSort.is_hmac(i),
                z3.Or(
                    leaked(creator, seq),
                    hmac_event(
                        creator,
                        seq,
                        ItemSort.hmac_payload(i),
                        shared_with,
                        request,
                        response,
                    ),
                ),
                # pair
                z3.And(
                    pub_fun(ItemSort.pair_first(i)),
                    pub_fun(ItemSort.pair_second(i)),
                ),
            ),
        ),
    )
    z3.RecAddDefinition(pub_fun, [i], body)
    _pub_cache[cache_key] = pub_fun
    return pub_fun


_env_counter = itertools.count()


def symbolic_environment(
    env: Environment, ledger: EventLedger
) -> tuple[z3.FuncDeclRef, z3.FuncDeclRef, z3.FuncDeclRef, z3.FuncDeclRef]:
    """
    Define `bad`, `shared_with`, `request` and `response` in z3
    as the (finite) facts of a concrete run,
    so that `symbolic_pub` can be evaluated against them.
    """
    n = next(_env_counter)
    c, s = z3.Ints("c s")
    r1, r2 = z3.Consts("r1 r2", ItemSort)

    bad = z3.RecFunction(f"bad_{n}", z3.IntSort(), z3.BoolSort())
    z3.RecAddDefinition(
        bad, [c], z3.Or(z3.BoolVal(False), *(c == p for p in env.bad))
    )

    shared_with = z3.RecFunction(
        f"shared_with_{n}", z3.IntSort(), z3.IntSort(), z3.IntSort()
    )
    partner: z3.ArithRef = z3.IntVal(NOT_SHARED)
    for (creator, seq), other in env.shared.items():
        partner = z3.If(z3.And(c == creator, s == seq), other, partner)
    z3.RecAddDefinition(shared_with, [c, s], partner)

    request = z3.RecFunction(
        f"request_{n}", z3.IntSort(), z3.IntSort(), ItemSort, z3.BoolSort()
    )
    z3.RecAddDefinition(
        request,
        [c, s, r1],
        z3.Or(
            z3.BoolVal(False),
            *(
                z3.And(c == cl, s == sv, r1 == req.to_z3())
                for cl, sv, req in ledger.requests
            ),
        ),
    )

    response = z3.RecFunction(
        f"response_{n}", z3.IntSort(), z3.IntSort(), ItemSort, ItemSort, z3.BoolSort()
    )
    z3.RecAddDefinition(
        response,
        [c, s, r1, r2],
        z3.Or(
            z3.BoolVal(False),
            *(
                z3.And(c == cl, s == sv, r1 == req.to_z3(), r2 == resp.to_z3())
                for cl, sv, req, resp in ledger.responses
            ),
        ),
    )

    return bad, shared_with, request, response
