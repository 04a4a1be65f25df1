# sgglaw/errors.py
"""
Excecoes do pipeline.

Somente para falhas reais. Resultados esperados (404, 429, zero artigos,
nenhum provider IA, consolidacao ignorada) sao valores de retorno.
"""


class SggLawError(Exception):
    """Base de todas as excecoes do pacote."""


class ConfigurationError(SggLawError):
    """Configuracao ou recurso obrigatorio ausente/invalido."""


class MissingArtifactError(SggLawError):
    """Artefato (PDF/OCR/JSON) ausente no momento do estagio."""

    def __init__(self, document_id: str, kind: str):
        super().__init__(f"{kind.upper()} ausente para {document_id}")
        self.document_id = document_id
        self.kind = kind


class CorruptedArtifactError(SggLawError):
    """Artefato presente mas ilegivel."""

    def __init__(self, document_id: str, kind: str, detail: str = ""):
        msg = f"{kind.upper()} corrompido para {document_id}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)
        self.document_id = document_id
        self.kind = kind


class ProviderError(SggLawError):
    """Falha de transporte/protocolo de um provider IA."""


class StorageError(SggLawError):
    """Falha do colaborador de storage."""
