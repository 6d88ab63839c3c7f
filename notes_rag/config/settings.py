from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    llm_base_url: str = "http://localhost:11434/v1"
    llm_model: str = "qwen2.5:7b"
    llm_api_key: str = "ollama"
    llm_max_tokens: int = 1024
    llm_temperature: float = 0.1
    llm_timeout: float = 120.0

    # "sentence_transformer" (local) or "openai" (any OpenAI-compatible API)
    embedding_provider: str = "sentence_transformer"
    embedding_model: str = "intfloat/multilingual-e5-base"
    # E5 models expect a role prefix; "query: " for symmetric query/note matching
    embedding_prefix: str = "query: "
    embedding_base_url: str = "https://api.openai.com/v1"
    embedding_api_key: str = ""
    embedding_dimensions: int | None = None
    embedding_cache_ttl: float = 3600.0
    embedding_min_interval: float = 0.1
    embedding_timeout: float = 30.0
    embedding_concurrency: int = 4

    docs_path: str = "./docs"
    docs_scope: str | None = None
    docs_extensions: list[str] = [".md", ".markdown", ".txt"]
    native_search_enabled: bool = True

    rag_top_k: int = 10
    rag_retrieve_k: int = 5
    rag_vector_threshold: float = 0.5
    rag_lexical_threshold: float = 0.1
    rag_lexical_threshold_cjk: float = 0.05
    rag_snippet_length: int = 1000
    rag_mmr_lambda: float = 0.5
    rag_hyde_max_tokens: int = 512
    chunk_size: int = 1000
    chunks_per_document: int = 2

    reflection_max_rounds: int = 5
    reflection_follow_up_limit: int = 3
    reflection_follow_up_results: int = 3

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
