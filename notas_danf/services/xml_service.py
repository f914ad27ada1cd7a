import logging
import xml.etree.ElementTree as ET
from typing import Dict
from notas_danf.errors import ValidationError

logger = logging.getLogger(__name__)

NS = 'http://www.portalfiscal.inf.br/nfe'


def _text(el, tag: str) -> str | None:
    child = el.find(f'{{{NS}}}{tag}') if el is not None else None
    return child.text.strip() if child is not None and child.text else None


def parse_nfe_xml(xml_bytes: bytes) -> Dict:
    """
    Read the fields of a receipt from an NF-e XML (nfeProc or bare NFe).

    Returns the raw values in the same shape the AI extraction produces;
    normalisation happens in receipt_service.
    """
    try:
        root = ET.fromstring(xml_bytes)
    except ET.ParseError as e:
        raise ValidationError(f'XML inválido: {e}') from e

    info = root.find(f'.//{{{NS}}}infNFe')
    if info is None and root.tag == f'{{{NS}}}infNFe':
        info = root
    if info is None:
        raise ValidationError('XML não contém uma NF-e (infNFe ausente)')

    ide = info.find(f'{{{NS}}}ide')
    emit = info.find(f'{{{NS}}}emit')
    total = info.find(f'.//{{{NS}}}ICMSTot')
    chave = info.get('Id', '').replace('NFe', '') or None

    # chNFe in the protocol is authoritative when the Id attribute is missing
    if not chave:
        chave = _text(root.find(f'.//{{{NS}}}infProt'), 'chNFe')

    data_emissao = _text(ide, 'dhEmi') or _text(ide, 'dEmi')

    logger.info(f'NF-e XML parsed: chave={chave} numero={_text(ide, "nNF")}')
    return {
        'empresa_nome': _text(emit, 'xNome'),
        'chave_acesso': chave,
        'numero_nota': _text(ide, 'nNF'),
        'data_emissao': data_emissao[:10] if data_emissao else None,
        'valor': _text(total, 'vNF'),
    }
