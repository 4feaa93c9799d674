"""
Vector store factory for selecting the backend.

FAISS (local dev), Amazon S3 Vectors (production) or an in-memory store,
chosen by VECTOR_STORE_STORE_TYPE. Every backend is a LangChain
VectorStore so the index client stays backend-agnostic.

Dependencies: langchain_community, langchain_aws, langchain_core, faiss-cpu
System role: Vector store instantiation and selection
"""

import logging
from pathlib import Path

from langchain_core.embeddings import Embeddings
from langchain_core.vectorstores import InMemoryVectorStore, VectorStore

from knowledge_ingest.boundary.vdb.embeddings_wrapper import FixedDimensionEmbeddings
from knowledge_ingest.configs.vector_store import VectorStoreSettings

logger = logging.getLogger(__name__)

SUPPORTED_STORE_TYPES = ("faiss", "s3", "memory")


def build_embeddings(settings: VectorStoreSettings) -> Embeddings:
    """Create the embedding function configured for the index."""
    return FixedDimensionEmbeddings(
        model=settings.embedding_model,
        output_dimensionality=settings.embedding_dimension,
    )


def _load_or_create_faiss(settings: VectorStoreSettings, embeddings: Embeddings) -> VectorStore:
    """Load the persisted FAISS index or start an empty one of the configured dimension."""
    import faiss
    from langchain_community.docstore.in_memory import InMemoryDocstore
    from langchain_community.vectorstores import FAISS

    index_dir = Path(settings.faiss_index_dir)
    index_file = index_dir / f"{settings.index_name}.faiss"
    if index_file.exists():
        logger.info(f"{__name__}:_load_or_create_faiss - Loading index from {index_dir}")
        return FAISS.load_local(
            str(index_dir),
            embeddings,
            index_name=settings.index_name,
            allow_dangerous_deserialization=True,
        )

    logger.info(
        f"{__name__}:_load_or_create_faiss - Creating empty index "
        f"(dimension={settings.embedding_dimension})"
    )
    index_dir.mkdir(parents=True, exist_ok=True)
    return FAISS(
        embedding_function=embeddings,
        index=faiss.IndexFlatL2(settings.embedding_dimension),
        docstore=InMemoryDocstore(),
        index_to_docstore_id={},
    )


def create_vector_store(
    settings: VectorStoreSettings,
    embeddings: Embeddings | None = None,
) -> VectorStore:
    """
    Build the LangChain vector store for the configured backend.

    Args:
        settings: Vector store settings
        embeddings: Embedding function override (Gemini by default)

    Returns:
        VectorStore instance

    Raises:
        ValueError: If store_type is not supported
    """
    store_type = settings.store_type.lower()
    if store_type not in SUPPORTED_STORE_TYPES:
        raise ValueError(
            f"Invalid VECTOR_STORE_STORE_TYPE: {store_type}. "
            f"Must be one of {', '.join(SUPPORTED_STORE_TYPES)}."
        )

    embeddings = embeddings or build_embeddings(settings)

    if store_type == "faiss":
        logger.info(f"{__name__}:create_vector_store - Creating FAISS store (local dev mode)")
        return _load_or_create_faiss(settings, embeddings)

    if store_type == "s3":
        from langchain_aws.vectorstores import AmazonS3Vectors

        logger.info(f"{__name__}:create_vector_store - Creating S3 Vectors store (production mode)")
        return AmazonS3Vectors(
            vector_bucket_name=settings.vectors_bucket,
            index_name=settings.index_name,
            embedding=embeddings,
            region_name=settings.aws_region,
        )

    logger.info(f"{__name__}:create_vector_store - Creating in-memory store")
    return InMemoryVectorStore(embedding=embeddings)
