import logging
import math
import re
from datetime import date, datetime
from typing import Dict, Optional
from sqlalchemy import asc, desc
from sqlalchemy.orm import Query
from notas_danf.errors import ValidationError
from notas_danf.models.models import NotaFiscal

logger = logging.getLogger(__name__)

CHAVE_ACESSO_DIGITS = 44

REQUIRED_FIELDS = {
    'empresa_nome': 'nome da empresa',
    'chave_acesso': 'chave de acesso',
    'numero_nota': 'número da nota',
    'data_emissao': 'data de emissão',
    'valor': 'valor',
}

SORT_FIELDS = {
    'empresa_nome': NotaFiscal.empresa_nome,
    'numero_nota': NotaFiscal.numero_nota,
    'data_emissao': NotaFiscal.data_emissao,
    'valor': NotaFiscal.valor,
}


# ── Field normalisation ───────────────────────────────────────────────────────

def normalize_chave(chave) -> str:
    """Strip every non-digit. Keys without 44 digits are kept, only logged."""
    digits = re.sub(r'\D', '', str(chave))
    if len(digits) != CHAVE_ACESSO_DIGITS:
        logger.warning(f'Chave de acesso com formato incorreto ({len(digits)} dígitos): {digits}')
    return digits


def is_chave_valida(chave: Optional[str]) -> bool:
    return bool(chave) and len(chave) == CHAVE_ACESSO_DIGITS and chave.isdigit()


def parse_valor(valor) -> float:
    """Accept numbers and strings like '1.234,56', '1234,56', '1234.56', 'R$ 89,99'."""
    if isinstance(valor, (int, float)) and not isinstance(valor, bool):
        result = float(valor)
    else:
        s = str(valor).strip()
        if s.startswith('R$'):
            s = s[2:].strip()
        # Brazilian format: dot for thousands, comma for decimals
        if ',' in s:
            s = s.replace('.', '').replace(',', '.')
        try:
            result = float(s)
        except ValueError:
            raise ValidationError(f'Valor inválido: {valor!r}') from None
    # float() also accepts 'nan' and 'inf'
    if not math.isfinite(result):
        raise ValidationError(f'Valor inválido: {valor!r}')
    return result


def parse_data_emissao(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(f'Data de emissão inválida: {value!r}') from None


def normalize_extracted(data: Dict) -> Dict:
    """
    Validate the five receipt fields and return them normalised.

    Raises ValidationError when any field is missing; the caller must not
    persist anything in that case.
    """
    missing = [label for key, label in REQUIRED_FIELDS.items()
               if data.get(key) is None or str(data.get(key)).strip() == '']
    if missing:
        raise ValidationError('Dados incompletos na nota fiscal: ' + ', '.join(missing))

    return {
        'empresa_nome': str(data['empresa_nome']).strip(),
        'chave_acesso': normalize_chave(data['chave_acesso']),
        'numero_nota': str(data['numero_nota']).strip(),
        'data_emissao': parse_data_emissao(data['data_emissao']),
        'valor': parse_valor(data['valor']),
    }


def format_brl(valor: Optional[float]) -> str:
    """1234.56 → 'R$ 1.234,56'"""
    if valor is None:
        return ''
    us = f'{valor:,.2f}'
    return 'R$ ' + us.replace(',', '_').replace('.', ',').replace('_', '.')


# ── Listing ───────────────────────────────────────────────────────────────────

def filter_notas(q: Query, empresa: Optional[str] = None,
                 numero: Optional[str] = None,
                 data_inicio: Optional[date] = None,
                 data_fim: Optional[date] = None,
                 valor_min: Optional[float] = None,
                 valor_max: Optional[float] = None) -> Query:
    """Substring matches are case-insensitive; ranges are inclusive."""
    if empresa:
        q = q.filter(NotaFiscal.empresa_nome.ilike(f'%{empresa}%'))
    if numero:
        q = q.filter(NotaFiscal.numero_nota.ilike(f'%{numero}%'))
    if data_inicio:
        q = q.filter(NotaFiscal.data_emissao >= data_inicio)
    if data_fim:
        q = q.filter(NotaFiscal.data_emissao <= data_fim)
    if valor_min is not None:
        q = q.filter(NotaFiscal.valor >= valor_min)
    if valor_max is not None:
        q = q.filter(NotaFiscal.valor <= valor_max)
    return q


def sort_notas(q: Query, sort_field: str = 'data_emissao', sort_order: str = 'desc') -> Query:
    column = SORT_FIELDS.get(sort_field)
    if column is None:
        raise ValidationError(f'Campo de ordenação inválido: {sort_field}')
    direction = asc if sort_order == 'asc' else desc
    return q.order_by(direction(column), direction(NotaFiscal.id))
