from __future__ import annotations


class PortariaError(Exception):
    """Base for failures shown to the front desk as a single title/description toast."""

    status_code = 400
    title = "Erro"
    description = "Falha na operação."

    def __init__(self, description: str | None = None, *, title: str | None = None) -> None:
        if description:
            self.description = description
        if title:
            self.title = title
        super().__init__(self.description)

    def as_payload(self) -> dict:
        return {"ok": False, "title": self.title, "detail": self.description}


# --- credentials ---
class InvalidIdentifier(PortariaError):
    title = "CPF inválido"
    description = "CPF deve ter 11 dígitos."


class InvalidSecret(PortariaError):
    title = "Senha inválida"
    description = "Informe a senha."


class InvalidCredentials(PortariaError):
    status_code = 401
    title = "Falha no login"
    description = "CPF ou senha incorretos."


class CondominiumLookupFailed(PortariaError):
    status_code = 502
    title = "Falha no login"
    description = "Erro ao buscar dados do condomínio."


class NotAuthenticated(PortariaError):
    status_code = 401
    title = "Sessão expirada"
    description = "Faça login novamente."


class Forbidden(PortariaError):
    status_code = 403
    title = "Acesso negado"
    description = "Você não tem permissão para esta operação."


# --- remote store / storage ---
class StoreError(PortariaError):
    status_code = 502
    title = "Erro no banco de dados"
    description = "Falha ao acessar o banco de dados."


class RecordNotFound(PortariaError):
    status_code = 404
    title = "Não encontrado"
    description = "Registro não encontrado."


class StorageUploadFailed(PortariaError):
    status_code = 502
    title = "Erro"
    description = "Falha no upload da imagem."


class RecordInsertFailed(PortariaError):
    status_code = 502
    title = "Erro"
    description = "Erro ao salvar entrega."


# --- deliveries ---
class PhotoRequired(PortariaError):
    title = "Foto obrigatória"
    description = "Por favor, tire uma foto da encomenda."


class InvalidPhoto(PortariaError):
    title = "Foto inválida"
    description = "Arquivo de imagem não suportado."


class ResidentNotFound(PortariaError):
    status_code = 404
    title = "Morador não encontrado"
    description = "Selecione um morador do condomínio."


class CodeNotFound(PortariaError):
    status_code = 404
    title = "Código não encontrado"
    description = "Código inválido ou encomenda não registrada."


class AlreadyPickedUp(PortariaError):
    status_code = 409
    title = "Encomenda já retirada"
    description = "Esta encomenda já foi retirada anteriormente."


class DeliveryCancelled(PortariaError):
    status_code = 409
    title = "Encomenda cancelada"
    description = "Esta encomenda foi cancelada."


class DescriptionRequired(PortariaError):
    title = "Descrição obrigatória"
    description = "Por favor, adicione uma descrição da retirada."


class PickupUpdateFailed(PortariaError):
    status_code = 502
    title = "Erro"
    description = "Falha ao atualizar retirada no banco de dados."


class NotificationFailed(PortariaError):
    """Raised inside the notifier only; delivery operations log it and move on."""

    status_code = 502
    title = "WhatsApp"
    description = "Falha ao enviar notificação."
