"""
Embedding Client

This module implements the embedding client used by ingestion and
retrieval. It calls the OpenAI embeddings API (or any compatible provider)
and is responsible for:

- Network and transport error isolation
- Strict response validation, including vector dimensionality
- Deterministic output semantics for downstream storage and search

The HTTP client is injected and owned by the application lifespan; the
Embedder holds no other state and is safe to reuse across requests.
"""

from __future__ import annotations

from typing import List, Sequence, Optional
import logging
import httpx

from ..core.errors import EmbeddingServiceError

logger = logging.getLogger("legal_rag.embedder")


class Embedder:
    """
    Asynchronous embedding generator.

    This class performs no caching and assumes the caller handles
    persistence of the resulting vectors.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        model: str,
        dimensions: int,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        http_client : httpx.AsyncClient
            Shared client created at process start.

        api_key : str
            Provider API key.

        model : str
            Embedding model name.

        dimensions : int
            Expected vector length; every returned vector is checked against it.

        base_url : str
            Base URL of the provider API.

        timeout : float
            HTTP timeout for each request.
        """
        self._client = http_client
        self.api_key = api_key
        self.model = model
        self.dimensions = dimensions
        self.url = f"{base_url.rstrip('/')}/embeddings"
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> List[float]:
        """
        Generate the embedding for one text.

        Raises
        ------
        EmbeddingServiceError
            On a non-success status, transport failure or malformed payload.
        """
        vectors = await self.embed_many([text], batch_size=1)
        return vectors[0]

    async def embed_many(
        self,
        texts: Sequence[str],
        batch_size: int = 20,
    ) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts.

        Parameters
        ----------
        texts : Sequence[str]
            List or sequence of input text strings.

        batch_size : int
            Maximum batch size per request. Helps avoid API token/size limits.

        Returns
        -------
        List[List[float]]
            One embedding per input text, in input order.

        Raises
        ------
        EmbeddingServiceError
            If any batch fails or the response is malformed.
        """
        if not texts:
            return []

        all_embeddings: List[List[float]] = []
        headers = {"Authorization": f"Bearer {self.api_key}"}

        for start in range(0, len(texts), batch_size):
            batch = list(texts[start : start + batch_size])
            payload = {
                "model": self.model,
                "input": batch,
            }

            try:
                response = await self._client.post(
                    self.url,
                    json=payload,
                    headers=headers,
                    timeout=self.timeout,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "Embedding request rejected (%d): batch size=%d, body=%s",
                    exc.response.status_code,
                    len(batch),
                    exc.response.text[:500],
                )
                raise EmbeddingServiceError(
                    f"Embedding generation failed: HTTP {exc.response.status_code}"
                ) from exc
            except httpx.HTTPError as exc:
                logger.error(
                    "Embedding request failed (%s): batch size=%d, error=%s",
                    type(exc).__name__,
                    len(batch),
                    str(exc),
                )
                raise EmbeddingServiceError(
                    f"Embedding generation failed: {type(exc).__name__}"
                ) from exc

            try:
                data = response.json()
            except ValueError as exc:
                logger.error(
                    "Embedding response was not JSON: batch size=%d, body=%s",
                    len(batch),
                    response.text[:500],
                )
                raise EmbeddingServiceError("Embedding response was not valid JSON.") from exc

            embeddings = self._extract_embeddings(data, self.dimensions)
            if len(embeddings) != len(batch):
                raise EmbeddingServiceError(
                    f"Expected {len(batch)} embeddings, received {len(embeddings)}."
                )
            all_embeddings.extend(embeddings)

        return all_embeddings

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_embeddings(data: dict, dimensions: Optional[int] = None) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI returns:
            { "data": [ {"embedding": [...]}, ... ] }

        Raises
        ------
        EmbeddingServiceError
            If the API returns unexpected structure or wrong-sized vectors.
        """
        if not isinstance(data, dict) or "data" not in data:
            raise EmbeddingServiceError("Embedding response missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list):
            raise EmbeddingServiceError("'data' field must be a list.")

        embeddings: List[List[float]] = []

        for index, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise EmbeddingServiceError(
                    f"Malformed embedding record at index {index}: {record!r}"
                )

            emb = record["embedding"]
            if not isinstance(emb, list) or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise EmbeddingServiceError(
                    f"Invalid embedding vector at index {index}: must be float list."
                )

            if dimensions is not None and len(emb) != dimensions:
                raise EmbeddingServiceError(
                    f"Embedding at index {index} has {len(emb)} dimensions, expected {dimensions}."
                )

            embeddings.append([float(x) for x in emb])

        return embeddings
