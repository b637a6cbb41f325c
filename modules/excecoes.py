"""
Exceções da Agenda Ministerial
"""


class ErroAgenda(Exception):
    """Erro base da aplicação. As telas exibem a mensagem com st.error."""


class RegraNegocioError(ErroAgenda):
    """Operação viola uma regra do ministério."""


class RegistroNaoEncontrado(ErroAgenda):
    """Registro inexistente ou inativo."""


class ImportacaoError(ErroAgenda):
    """Arquivo CSV/JSON inválido."""


class SemConexaoError(ErroAgenda):
    """Sem conexão e sem dados em cache."""
