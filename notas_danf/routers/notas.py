import io
import csv
import logging
import re
from datetime import date
from typing import List, Literal, Optional
from urllib.parse import quote
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from notas_danf.db import get_db
from notas_danf.deps import (get_danf_service, get_deployment_packager, get_extraction_service,
                             get_ocr_service, get_photo_storage)
from notas_danf.models.models import User, UserRole, NotaFiscal, NotaStatus
from notas_danf.schemas.schemas import (ExtractionResponse, NotaExtraida, NotaFiscalConfirm,
                                        NotaFiscalOut, OcrProgressOut)
from notas_danf.services.danf_service import DanfRetrievalService
from notas_danf.services.download_tracker import tracker
from notas_danf.services.extraction_service import TextExtractionService
from notas_danf.services.ocr_service import OcrService
from notas_danf.services.packager import Packager, bundle, download_with_ocr, with_suffix
from notas_danf.services.receipt_service import filter_notas, format_brl, normalize_extracted, sort_notas
from notas_danf.services.storage_service import PhotoStorage
from notas_danf.routers.auth import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notas", tags=["notas"])

ALLOWED_IMAGES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}
_EXT_MEDIA_TYPES = {".jpg": "image/jpeg", ".jpeg": "image/jpeg",
                    ".png": "image/png", ".webp": "image/webp"}

SortField = Literal["empresa_nome", "numero_nota", "data_emissao", "valor"]
SortOrder = Literal["asc", "desc"]


def _file_ext(filename: str) -> str:
    """Return the lowercased dot-prefixed extension of a filename, e.g. '.xml'."""
    return "." + (filename or "").rsplit(".", 1)[-1].lower()


def _is_xml(content_type: str, filename: str) -> bool:
    return content_type in ("application/xml", "text/xml") or _file_ext(filename) == ".xml"


def _image_media_type(content_type: str, filename: str) -> Optional[str]:
    if content_type in ALLOWED_IMAGES:
        return "image/jpeg" if content_type == "image/jpg" else content_type
    return _EXT_MEDIA_TYPES.get(_file_ext(filename))


def _visible(q, user: User):
    """Viewers only ever see their own receipts."""
    if user.role != UserRole.admin:
        q = q.filter(NotaFiscal.user_id == user.id)
    return q


def _get_nota(db: Session, nota_id: int, user: User) -> NotaFiscal:
    nota = _visible(db.query(NotaFiscal), user).filter(NotaFiscal.id == nota_id).first()
    if not nota:
        raise HTTPException(status_code=404, detail="Nota não encontrada")
    return nota


def _attachment(content: bytes, media_type: str, filename: str) -> Response:
    # filename= must stay plain ASCII; filename* carries the real name
    fallback = re.sub(r'[^A-Za-z0-9._ -]', '_', filename)
    disposition = f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"
    return Response(content=content, media_type=media_type,
                    headers={"Content-Disposition": disposition})


@router.post("/upload", response_model=ExtractionResponse)
async def upload_document(file: UploadFile = File(...),
                          current_user: User = Depends(get_current_user),
                          extraction: TextExtractionService = Depends(get_extraction_service),
                          storage: PhotoStorage = Depends(get_photo_storage)):
    """
    Read the receipt fields from an NF-e XML or a photo, for review.

    Nothing is persisted as a receipt here; the reviewed fields come back
    through /confirm.
    """
    content = await file.read()
    ct = (file.content_type or "").lower()
    fname = file.filename or ""

    if _is_xml(ct, fname):
        data = extraction.extract_xml(content)
        imagem_url = None
    elif media_type := _image_media_type(ct, fname):
        data = await run_in_threadpool(extraction.extract_image, content, media_type)
        imagem_url = await run_in_threadpool(storage.save, current_user.id, content, media_type)
    else:
        raise HTTPException(
            status_code=400,
            detail="Formato não suportado. Use XML ou imagem (JPG, PNG, WEBP)",
        )

    logger.info(f"Nota extraída para revisão: {data['empresa_nome']} nº {data['numero_nota']}")
    return ExtractionResponse(data=NotaExtraida(**data), imagem_url=imagem_url)


@router.post("/confirm", response_model=NotaFiscalOut)
async def confirm_nota(body: NotaFiscalConfirm,
                       db: Session = Depends(get_db),
                       current_user: User = Depends(get_current_user)):
    """Save the receipt the user reviewed."""
    fields = normalize_extracted(body.model_dump())

    dup = db.query(NotaFiscal).filter(NotaFiscal.user_id == current_user.id,
                                      NotaFiscal.chave_acesso == fields["chave_acesso"]).first()
    if dup:
        raise HTTPException(status_code=400, detail="Nota já importada (chave de acesso duplicada)")

    nota = NotaFiscal(**fields, user_id=current_user.id,
                      imagem_url=body.imagem_url, status=NotaStatus.confirmada)
    db.add(nota)
    db.commit()
    db.refresh(nota)
    logger.info(f"Nota {nota.id} salva por user {current_user.id}")
    return nota


@router.get("/export/csv")
async def export_csv(empresa: Optional[str] = None,
                     numero: Optional[str] = None,
                     data_inicio: Optional[date] = None,
                     data_fim: Optional[date] = None,
                     valor_min: Optional[float] = None,
                     valor_max: Optional[float] = None,
                     db: Session = Depends(get_db),
                     current_user: User = Depends(get_current_user)):
    q = filter_notas(_visible(db.query(NotaFiscal), current_user),
                     empresa, numero, data_inicio, data_fim, valor_min, valor_max)
    notas = sort_notas(q).all()
    output = io.StringIO()
    writer = csv.writer(output, delimiter=";")
    writer.writerow(["ID", "Empresa", "Chave de Acesso", "Número", "Data Emissão",
                     "Valor", "Status", "Data Cadastro"])
    for n in notas:
        writer.writerow([n.id, n.empresa_nome, n.chave_acesso, n.numero_nota,
                         n.data_emissao.strftime("%d/%m/%Y"), format_brl(n.valor),
                         n.status.value, n.created_at])
    output.seek(0)
    return StreamingResponse(
        io.BytesIO(output.getvalue().encode("utf-8-sig")),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=notas_fiscais.csv"},
    )


@router.get("/empresas", response_model=List[str])
async def list_empresas(db: Session = Depends(get_db),
                        current_user: User = Depends(get_current_user)):
    """Distinct company names, for the search combobox."""
    rows = (_visible(db.query(NotaFiscal.empresa_nome), current_user)
            .distinct().order_by(NotaFiscal.empresa_nome).all())
    return [r.empresa_nome for r in rows if r.empresa_nome]


@router.get("", response_model=List[NotaFiscalOut])
async def list_notas(empresa: Optional[str] = None,
                     numero: Optional[str] = None,
                     data_inicio: Optional[date] = None,
                     data_fim: Optional[date] = None,
                     valor_min: Optional[float] = None,
                     valor_max: Optional[float] = None,
                     sort_field: SortField = "data_emissao",
                     sort_order: SortOrder = "desc",
                     skip: int = 0, limit: int = 100,
                     db: Session = Depends(get_db),
                     current_user: User = Depends(get_current_user)):
    q = filter_notas(_visible(db.query(NotaFiscal), current_user),
                     empresa, numero, data_inicio, data_fim, valor_min, valor_max)
    return sort_notas(q, sort_field, sort_order).offset(skip).limit(limit).all()


@router.get("/{nota_id}", response_model=NotaFiscalOut)
async def get_nota(nota_id: int, db: Session = Depends(get_db),
                   current_user: User = Depends(get_current_user)):
    return _get_nota(db, nota_id, current_user)


@router.delete("/{nota_id}")
async def delete_nota(nota_id: int, db: Session = Depends(get_db),
                      current_user: User = Depends(get_current_user)):
    nota = _get_nota(db, nota_id, current_user)
    db.delete(nota)
    db.commit()
    logger.info(f"Nota {nota_id} excluída por user {current_user.id}")
    return {"ok": True}


@router.get("/{nota_id}/danf")
async def download_danf(nota_id: int, db: Session = Depends(get_db),
                        current_user: User = Depends(get_current_user),
                        danf_service: DanfRetrievalService = Depends(get_danf_service)):
    nota = _get_nota(db, nota_id, current_user)
    danf = await danf_service.fetch(nota.chave_acesso, f"DANF-{nota.numero_nota}.pdf")
    return _attachment(danf.pdf_bytes, "application/pdf", danf.file_name)


@router.get("/{nota_id}/danf/ocr")
async def download_danf_ocr(nota_id: int, db: Session = Depends(get_db),
                            current_user: User = Depends(get_current_user),
                            danf_service: DanfRetrievalService = Depends(get_danf_service),
                            ocr: OcrService = Depends(get_ocr_service),
                            packager: Packager = Depends(get_deployment_packager)):
    """
    DANF plus its text. Depending on DANF_PACKAGER this is a zip with the PDF
    and a _texto.txt file, or a single searchable PDF.
    """
    nota = _get_nota(db, nota_id, current_user)
    if not tracker.start(nota.id):
        raise HTTPException(status_code=409, detail="Download com OCR já em andamento para esta nota")
    try:
        danf = await danf_service.fetch(nota.chave_acesso, f"DANF-{nota.numero_nota}.pdf")
        files = await run_in_threadpool(
            download_with_ocr, danf.danf_url, danf.file_name,
            on_progress=lambda p: tracker.update(nota_id, p),
            packager=packager, ocr=ocr,
        )
    finally:
        tracker.finish(nota_id)

    artifact = bundle(files, with_suffix(danf.file_name, "_ocr.zip"))
    return _attachment(artifact.content, artifact.media_type, artifact.filename)


@router.get("/{nota_id}/danf/ocr/progress", response_model=OcrProgressOut)
async def download_progress(nota_id: int, db: Session = Depends(get_db),
                            current_user: User = Depends(get_current_user)):
    _get_nota(db, nota_id, current_user)
    progress = tracker.progress(nota_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="Nenhum download com OCR em andamento")
    return progress
