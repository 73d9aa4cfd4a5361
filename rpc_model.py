"""
The RPC protocol as a transition system,
with the client's and the server's integrity guarantees proven inductive by z3.

The state tracks the last item put on the network (`sent`)
by the client, the server or the attacker.
Every item a role receives is a transition parameter guarded only by `pub`,
so the network is arbitrary:
the attacker may reorder, drop, replay and forge anything `pub` admits.
The events (`request`, `response`) and the key assignment (`shared_with`)
are immutable: they stand for everything ever recorded in a run.

`UncheckedTagProtocol` is the same protocol with a server that
does not check the tag of the messages it verifies.
Its proof fails: a response of the server itself is accepted back as a request.
"""

from prelude import *


class Principal(Int): ...


class KeySeq(Int): ...


class ClientPhase(Enum):
    idle: "ClientPhase"
    sent: "ClientPhase"
    awaiting_response: "ClientPhase"
    done: "ClientPhase"
    aborted: "ClientPhase"


class RpcProtocol(TransitionSystem):
    # the environment and the recorded events
    bad: Immutable[Rel[Principal]]
    shared_with: Immutable[Fun[Principal, KeySeq, Principal]]
    request: Immutable[Rel[Principal, Principal, Term]]
    response: Immutable[Rel[Principal, Principal, Term, Term]]

    # the key of the client, shared with the server
    client: Immutable[Principal]
    server: Immutable[Principal]
    key_seq: Immutable[KeySeq]
    req: Immutable[Term]

    sent: Term
    client_phase: ClientPhase
    client_result: Term
    server_accepted: Rel[Term]
    server_request: Term

    def pub(self, item: ExprRef) -> BoolRef:
        decl = symbolic_pub(
            self.bad.fun, self.shared_with.fun, self.request.fun, self.response.fun
        )
        return decl(item)

    def sealed(self, tag: int, body: ExprRef) -> ExprRef:
        payload = ItemSort.pair(ItemSort.data(tag), body)
        return ItemSort.pair(
            ItemSort.hmac(self.client, self.key_seq, payload), payload
        )

    def verifies(self, m: ExprRef) -> BoolRef:
        """`m` is `<hmac(key, payload), payload>` for the shared key."""
        h = ItemSort.pair_first(m)
        payload = ItemSort.pair_second(m)
        return And(
            ItemSort.is_pair(m),
            ItemSort.is_hmac(h),
            ItemSort.hmac_creator(h) == self.client,
            ItemSort.hmac_seq(h) == self.key_seq,
            ItemSort.hmac_payload(h) == payload,
            ItemSort.is_pair(payload),
        )

    def has_tag(self, m: ExprRef, tag: int) -> BoolRef:
        tag_item = ItemSort.pair_first(ItemSort.pair_second(m))
        return And(ItemSort.is_data(tag_item), ItemSort.data_value(tag_item) == tag)

    def body(self, m: ExprRef) -> ExprRef:
        return ItemSort.pair_second(ItemSort.pair_second(m))

    def accepts_response(self, m: ExprRef) -> BoolRef:
        body = self.body(m)
        return And(
            self.verifies(m),
            self.has_tag(m, RESPONSE_TAG),
            ItemSort.is_pair(body),
            ItemSort.pair_first(body) == self.req,
        )

    def roles_unchanged(self) -> BoolRef:
        return And(
            self.client_phase.unchanged(),
            self.client_result.unchanged(),
            self.server_accepted.unchanged(),
            self.server_request.unchanged(),
        )

    @axiom
    def key_binding(self) -> BoolRef:
        return self.shared_with(self.client, self.key_seq) == self.server

    @axiom
    def request_recorded(self) -> BoolRef:
        return self.request(self.client, self.server, self.req)

    @axiom
    def request_is_public(self) -> BoolRef:
        return self.pub(self.req)

    @init
    def initial(self, R: Term) -> BoolRef:
        return And(
            self.sent == ItemSort.data(0),
            self.client_phase == ClientPhase.idle,
            self.client_result == ItemSort.data(0),
            self.server_request == ItemSort.data(0),
            Not(self.server_accepted(R)),
        )

    @transition
    def client_send(self) -> BoolRef:
        return And(
            # guard
            self.client_phase == ClientPhase.idle,
            # updates
            self.sent.update(self.sealed(REQUEST_TAG, self.req)),
            self.client_phase.update(ClientPhase.sent),
            self.client_result.unchanged(),
            self.server_accepted.unchanged(),
            self.server_request.unchanged(),
        )

    @transition
    def client_await(self) -> BoolRef:
        return And(
            # guard
            self.client_phase == ClientPhase.sent,
            # updates
            self.client_phase.update(ClientPhase.awaiting_response),
            self.sent.unchanged(),
            self.client_result.unchanged(),
            self.server_accepted.unchanged(),
            self.server_request.unchanged(),
        )

    @transition
    def client_accept(self, m: Term) -> BoolRef:
        return And(
            # guard
            self.client_phase == ClientPhase.awaiting_response,
            self.pub(m),
            self.accepts_response(m),
            # updates
            self.client_phase.update(ClientPhase.done),
            self.client_result.update(ItemSort.pair_second(self.body(m))),
            self.sent.unchanged(),
            self.server_accepted.unchanged(),
            self.server_request.unchanged(),
        )

    @transition
    def client_abort(self, m: Term) -> BoolRef:
        return And(
            # guard
            self.client_phase == ClientPhase.awaiting_response,
            self.pub(m),
            Not(self.accepts_response(m)),
            # updates
            self.client_phase.update(ClientPhase.aborted),
            self.sent.unchanged(),
            self.client_result.unchanged(),
            self.server_accepted.unchanged(),
            self.server_request.unchanged(),
        )

    @transition
    def server_respond(self, m: Term, resp: Term) -> BoolRef:
        return self.serve(m, resp, self.has_tag(m, REQUEST_TAG))

    def serve(self, m: ExprRef, resp: ExprRef, tag_checked: BoolRef) -> BoolRef:
        """
        The server answers `r`, the body of `m`, with `resp`.
        The responder guarantees that `resp` is public
        and that `response(client, server, r, resp)` is recorded.
        Its precondition, that `r` was requested unless a principal is bad,
        is not assumed here: it is what `server_integrity` proves of `r`.
        """
        r = self.body(m)
        return And(
            # guard
            self.pub(m),
            self.verifies(m),
            tag_checked,
            # responder
            self.pub(resp),
            self.response(self.client, self.server, r, resp),
            # updates
            self.sent.update(self.sealed(RESPONSE_TAG, ItemSort.pair(r, resp))),
            self.server_accepted.update({(r,): true}),
            self.server_request.update(r),
            self.client_phase.unchanged(),
            self.client_result.unchanged(),
        )

    @transition
    def attacker_leak_key(self, p: Principal, n: KeySeq) -> BoolRef:
        return And(
            # guard
            Or(self.bad(p), self.bad(self.shared_with(p, n))),
            # updates
            self.sent.update(ItemSort.key(p, n)),
            self.roles_unchanged(),
        )

    @transition
    def attacker_publish_data(self, v: Int) -> BoolRef:
        return And(
            self.sent.update(ItemSort.data(v)),
            self.roles_unchanged(),
        )

    @transition
    def attacker_pair(self, a: Term, b: Term) -> BoolRef:
        return And(
            # guard
            self.pub(a),
            self.pub(b),
            # updates
            self.sent.update(ItemSort.pair(a, b)),
            self.roles_unchanged(),
        )

    @transition
    def attacker_hash(self, k: Term, x: Term) -> BoolRef:
        return And(
            # guard
            self.pub(k),
            ItemSort.is_key(k),
            self.pub(x),
            # updates
            self.sent.update(
                ItemSort.hmac(ItemSort.key_creator(k), ItemSort.key_seq(k), x)
            ),
            self.roles_unchanged(),
        )

    @transition
    def attacker_split_first(self, m: Term) -> BoolRef:
        return And(
            # guard
            self.pub(m),
            ItemSort.is_pair(m),
            # updates
            self.sent.update(ItemSort.pair_first(m)),
            self.roles_unchanged(),
        )

    @transition
    def attacker_split_second(self, m: Term) -> BoolRef:
        return And(
            # guard
            self.pub(m),
            ItemSort.is_pair(m),
            # updates
            self.sent.update(ItemSort.pair_second(m)),
            self.roles_unchanged(),
        )


class RpcIntegrityProof(Proof[RpcProtocol]):
    @invariant
    def sent_is_public(self) -> BoolRef:
        return self.sys.pub(self.sys.sent)

    @invariant
    def client_integrity(self) -> BoolRef:
        return Implies(
            self.sys.client_phase == ClientPhase.done,
            Or(
                self.sys.bad(self.sys.client),
                self.sys.bad(self.sys.server),
                self.sys.response(
                    self.sys.client,
                    self.sys.server,
                    self.sys.req,
                    self.sys.client_result,
                ),
            ),
        )

    @invariant
    def server_integrity(self, R: Term) -> BoolRef:
        return Implies(
            self.sys.server_accepted(R),
            Or(
                self.sys.bad(self.sys.client),
                self.sys.bad(self.sys.server),
                self.sys.request(self.sys.client, self.sys.server, R),
            ),
        )


class UncheckedTagProtocol(RpcProtocol):
    @transition
    def server_respond(self, m: Term, resp: Term) -> BoolRef:
        return self.serve(m, resp, true)


class UncheckedTagProof(RpcIntegrityProof):
    ts = UncheckedTagProtocol


if __name__ == "__main__":
    RpcIntegrityProof().check()
