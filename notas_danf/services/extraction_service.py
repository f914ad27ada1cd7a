"""
Extraction of the receipt fields from an uploaded document.

XML files are parsed locally. Photos go to a Claude vision model, which is
asked to answer with a single JSON object holding the five receipt fields.
"""

import base64
import json
import logging
import re
from typing import Dict, Optional, Protocol
import anthropic
from notas_danf.config import ANTHROPIC_API_KEY, VISION_MODEL, VISION_TIMEOUT
from notas_danf.errors import NetworkError, ValidationError
from notas_danf.services.receipt_service import normalize_extracted
from notas_danf.services.xml_service import parse_nfe_xml

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """Você é um assistente especializado em extrair dados de notas fiscais brasileiras (NF-e/DANF).
Analise a imagem e extraia EXATAMENTE as seguintes informações:
- Nome da empresa emitente (razão social completa)
- Chave de acesso da NF-e (44 dígitos)
- Número da nota fiscal
- Data de emissão (formato YYYY-MM-DD)
- Valor total da nota

Retorne APENAS um objeto JSON válido com estas chaves: empresa_nome, chave_acesso, numero_nota, data_emissao, valor.
Não inclua texto adicional, apenas o JSON."""

_JSON_BLOCK = re.compile(r'\{[\s\S]*\}')


class TextExtractionService(Protocol):
    def extract_xml(self, xml_bytes: bytes) -> Dict:
        ...

    def extract_image(self, image_bytes: bytes, media_type: str = 'image/jpeg') -> Dict:
        ...


def parse_model_json(content: str) -> Dict:
    """Recover the JSON object from a model answer, tolerating markdown fences."""
    match = _JSON_BLOCK.search(content)
    try:
        data = json.loads(match.group() if match else content)
    except json.JSONDecodeError as e:
        logger.error(f'Vision JSON parse error: {e}, content={content[:200]!r}')
        raise ValidationError('Não foi possível extrair dados estruturados da nota fiscal') from e
    if not isinstance(data, dict):
        raise ValidationError('Não foi possível extrair dados estruturados da nota fiscal')
    return data


class ClaudeExtractionService:
    def __init__(self, client: Optional[anthropic.Anthropic] = None,
                 model: str = VISION_MODEL):
        self._client = client
        self.model = model

    @property
    def client(self) -> anthropic.Anthropic:
        if self._client is None:
            if not ANTHROPIC_API_KEY:
                raise NetworkError('API de IA não configurada (ANTHROPIC_API_KEY)')
            self._client = anthropic.Anthropic(api_key=ANTHROPIC_API_KEY, timeout=VISION_TIMEOUT)
        return self._client

    def extract_xml(self, xml_bytes: bytes) -> Dict:
        return normalize_extracted(parse_nfe_xml(xml_bytes))

    def extract_image(self, image_bytes: bytes, media_type: str = 'image/jpeg') -> Dict:
        logger.info(f'Processando nota fiscal com IA ({len(image_bytes)} bytes)')
        try:
            message = self.client.messages.create(
                model=self.model,
                max_tokens=1024,
                system=SYSTEM_PROMPT,
                messages=[{
                    'role': 'user',
                    'content': [
                        {
                            'type': 'image',
                            'source': {
                                'type': 'base64',
                                'media_type': media_type,
                                'data': base64.b64encode(image_bytes).decode('ascii'),
                            },
                        },
                        {'type': 'text', 'text': 'Extraia os dados desta nota fiscal:'},
                    ],
                }],
            )
        except anthropic.RateLimitError as e:
            logger.error(f'Vision API rate limit: {e}')
            raise NetworkError('Limite de requisições excedido. Tente novamente em alguns instantes.') from e
        except anthropic.APIStatusError as e:
            logger.error(f'Vision API error {e.status_code}: {e}')
            if e.status_code == 402:
                raise NetworkError('Créditos insuficientes na API de IA.') from e
            raise NetworkError('Erro ao processar imagem com IA') from e
        except anthropic.APIError as e:
            logger.error(f'Vision API unreachable: {e}')
            raise NetworkError('Erro ao processar imagem com IA') from e

        content = ''.join(block.text for block in message.content if block.type == 'text')
        if not content.strip():
            raise ValidationError('Nenhum dado extraído da imagem')
        logger.info(f'Dados extraídos: {content[:200]}')
        return normalize_extracted(parse_model_json(content))
