from aimcore.runtime.orchestration import (
    ArangoChainRepository,
    HealingEvent,
    InMemoryChainRepository,
    NodeKind,
    ReasoningChain,
    ReasoningStep,
)


class DummyClient:
    def __init__(self) -> None:
        self.collections = []
        self.documents = {}
        self.modes = []

    def create_collections(self, definitions):  # type: ignore[override]
        self.collections.extend(d.name for d in definitions)

    def insert_document(self, collection, doc, *, overwrite_mode=None):  # type: ignore[override]
        self.modes.append(overwrite_mode)
        self.documents[(collection, doc["_key"])] = doc
        return {"_key": doc["_key"]}

    def get_document(self, collection, key):  # type: ignore[override]
        return self.documents.get((collection, key))


def make_chain(trace_id: str = "trace_1") -> ReasoningChain:
    return ReasoningChain(
        trace_id=trace_id,
        user_query="What is X?",
        token_budget=100,
        steps=[ReasoningStep(node_kind=NodeKind.PLAN, agent_id="planner", confidence=0.95, tokens=12)],
        healing_events=[HealingEvent(event="Chain execution failed", resolution="partial")],
        status="failed",
    )


def test_in_memory_repository_returns_copies():
    repo = InMemoryChainRepository()
    chain = make_chain()
    assert repo.save_chain(chain) == "trace_1"

    loaded = repo.get_chain("trace_1")
    loaded.final_answer = "mutated"
    assert repo.get_chain("trace_1").final_answer == ""
    assert repo.get_chain("missing") is None
    assert [c.trace_id for c in repo.list_chains()] == ["trace_1"]


def test_document_repository_round_trip():
    client = DummyClient()
    repo = ArangoChainRepository(client=client)
    repo.ensure_schema()
    assert client.collections == ["reasoning_chains"]

    chain = make_chain()
    repo.save_chain(chain)
    assert client.modes == ["replace"]
    assert client.documents[("reasoning_chains", "trace_1")]["_key"] == "trace_1"

    loaded = repo.get_chain("trace_1")
    assert loaded.status == "failed"
    assert loaded.steps[0].node_kind is NodeKind.PLAN
    assert loaded.healing_events[0].event == "Chain execution failed"
    assert repo.get_chain("other") is None
