import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Optional, Protocol
import httpx
from notas_danf.config import DANF_API_URL, DANF_RETRY_DELAY, DANF_TIMEOUT, MEUDANFE_API_KEY
from notas_danf.errors import NetworkError

logger = logging.getLogger(__name__)

# Status reported by Meu Danfe while it is still locating the NF-e upstream
_PENDING_STATUSES = {"WAITING", "SEARCHING"}


@dataclass
class DanfDocument:
    pdf_bytes: bytes
    file_name: str

    @property
    def danf_url(self) -> str:
        return "data:application/pdf;base64," + base64.b64encode(self.pdf_bytes).decode("ascii")


class DanfRetrievalService(Protocol):
    async def fetch(self, chave_acesso: str, default_name: Optional[str] = None) -> DanfDocument:
        ...


class MeuDanfeService:
    """
    DANF retrieval through the Meu Danfe API.

    A key not yet in the customer area is added first (PUT) and fetched again
    after a fixed back-off when the API says it is still being located.
    """

    def __init__(self, api_key: str = MEUDANFE_API_KEY, base_url: str = DANF_API_URL,
                 timeout: float = DANF_TIMEOUT, retry_delay: float = DANF_RETRY_DELAY,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_delay = retry_delay
        self.transport = transport

    async def fetch(self, chave_acesso: str, default_name: Optional[str] = None) -> DanfDocument:
        if not self.api_key:
            logger.error("MEUDANFE_API_KEY não configurada")
            raise NetworkError("API do Meu Danfe não configurada")
        logger.info(f"Baixando DANF para chave {chave_acesso[:10]}...")
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                         headers={"Api-Key": self.api_key},
                                         transport=self.transport) as client:
                resp = await client.get(f"/v2/fd/get/da/{chave_acesso}")

                if resp.status_code == 404:
                    logger.info("DANF não encontrado, adicionando à área do cliente...")
                    await self._add(client, chave_acesso)
                    resp = await client.get(f"/v2/fd/get/da/{chave_acesso}")
        except httpx.TimeoutException as e:
            logger.warning(f"Meu Danfe timeout for chave {chave_acesso[:10]}...")
            raise NetworkError("Tempo esgotado ao consultar a API do Meu Danfe") from e
        except httpx.HTTPError as e:
            logger.error(f"Meu Danfe error: {e}")
            raise NetworkError(f"Erro de conexão com a API do Meu Danfe: {e}") from e

        if not resp.is_success:
            logger.error(f"Erro da API Meu Danfe ({resp.status_code}): {resp.text[:200]}")
            raise NetworkError("Erro ao buscar DANF na API do Meu Danfe")
        return self._document(resp, default_name or f"DANF-{chave_acesso}.pdf")

    async def _add(self, client: httpx.AsyncClient, chave_acesso: str):
        resp = await client.put(f"/v2/fd/add/{chave_acesso}")
        if not resp.is_success:
            logger.error(f"Erro ao adicionar nota ({resp.status_code}): {resp.text[:200]}")
            raise NetworkError("Erro ao adicionar nota fiscal à área do cliente")
        try:
            status = resp.json().get("status")
        except ValueError:
            status = None
        logger.info(f"Nota adicionada, status: {status}")
        if status in _PENDING_STATUSES:
            await asyncio.sleep(self.retry_delay)

    @staticmethod
    def _document(resp: httpx.Response, default_name: str) -> DanfDocument:
        try:
            data = resp.json()
            pdf_bytes = base64.b64decode(data["data"], validate=True)
        except (ValueError, KeyError, TypeError, binascii.Error) as e:
            raise NetworkError("Resposta inválida da API do Meu Danfe") from e
        name = data.get("name") or default_name
        logger.info(f"DANF obtido com sucesso: {name} ({len(pdf_bytes)} bytes)")
        return DanfDocument(pdf_bytes=pdf_bytes, file_name=name)
