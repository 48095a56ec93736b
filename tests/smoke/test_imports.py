def test_import_memory():
    from aimcore.runtime.memory import (  # noqa: F401
        ArangoMemoryRepository,
        DumbbellConfig,
        InMemoryMemoryRepository,
        MemoryStore,
    )


def test_import_orchestration():
    from aimcore.runtime.orchestration import (  # noqa: F401
        ChainConfig,
        OrchestrationEngine,
        PipelineContext,
        verify_audit,
    )


def test_import_verification():
    from aimcore.runtime.verification import VerificationFramework, VerificationThresholds  # noqa: F401


def test_import_database_contracts():
    from aimcore.database import CollectionDefinition, DocumentClient  # noqa: F401
