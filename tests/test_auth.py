"""Tests for accounts, approval, permissions and account settings."""

import pytest

from modules.auth import (
    alterar_perfil,
    aprovar_usuario,
    autenticar_usuario,
    get_usuario,
    get_usuario_por_integrante,
    get_usuarios,
    get_usuarios_pendentes,
    hash_senha,
    registrar_usuario,
    rejeitar_usuario,
    tem_permissao,
    verificar_senha,
)
from modules.configuracoes import alterar_senha_usuario, definir_ativo_usuario, get_logs_acesso
from modules.excecoes import RegistroNaoEncontrado, RegraNegocioError

SENHA_PADRAO = "senha123"


class TestSenha:
    """Password hashing."""

    def test_hash_confere(self):
        """The bcrypt hash verifies only the right password."""
        senha_hash = hash_senha("louvor2025")
        assert senha_hash != "louvor2025"
        assert verificar_senha("louvor2025", senha_hash)
        assert not verificar_senha("outra", senha_hash)


class TestCadastroEAprovacao:
    """Sign-up and approval flow."""

    def test_conta_nova_fica_pendente(self):
        """New accounts cannot log in before approval."""
        usuario_id = registrar_usuario("Maria Lima", "Maria@Agenda.test", "segredo1")
        assert autenticar_usuario("maria@agenda.test", "segredo1") is None
        assert [u["id"] for u in get_usuarios_pendentes()] == [usuario_id]
        assert get_usuario(usuario_id)["perfil"] == "membro"

    def test_validacoes(self):
        """Short passwords and repeated e-mails are rejected."""
        with pytest.raises(RegraNegocioError):
            registrar_usuario("Maria", "maria@agenda.test", "12345")
        registrar_usuario("Maria", "maria@agenda.test", "123456")
        with pytest.raises(RegraNegocioError):
            registrar_usuario("Outra Maria", "MARIA@agenda.test", "123456")

    def test_aprovar_e_entrar(self, criar_usuario, criar_integrante):
        """Approved accounts log in without exposing the hash."""
        admin = criar_usuario(perfil="admin")
        integrante = criar_integrante("Maria", "Lima")
        usuario_id = registrar_usuario("Maria Lima", "maria@agenda.test", "segredo1")
        aprovar_usuario(usuario_id, "vocal", admin, integrante_id=integrante)

        usuario = autenticar_usuario(" MARIA@agenda.test ", "segredo1")
        assert usuario["perfil"] == "vocal"
        assert usuario["integrante_nome"] == "Maria Lima"
        assert "senha_hash" not in usuario
        assert get_usuario(usuario_id)["ultimo_acesso"] is not None
        assert get_usuario_por_integrante(integrante)["id"] == usuario_id
        assert autenticar_usuario("maria@agenda.test", "errada") is None

    def test_aprovar_perfil_invalido(self, criar_usuario):
        """Unknown profiles are rejected."""
        usuario_id = registrar_usuario("Maria", "maria@agenda.test", "segredo1")
        with pytest.raises(RegraNegocioError):
            aprovar_usuario(usuario_id, "pastor", criar_usuario(perfil="admin"))

    def test_aprovar_conta_ja_aprovada(self, criar_usuario):
        """Only pending accounts can be approved."""
        with pytest.raises(RegistroNaoEncontrado):
            aprovar_usuario(criar_usuario(), "membro", None)

    def test_rejeitar(self):
        """Rejected accounts leave the queue and stay locked."""
        usuario_id = registrar_usuario("Spam", "spam@agenda.test", "segredo1")
        rejeitar_usuario(usuario_id, None)
        assert get_usuarios_pendentes() == []
        with pytest.raises(RegistroNaoEncontrado):
            aprovar_usuario(usuario_id, "membro", None)
        assert get_usuario(usuario_id)["aprovado"] == 0

    def test_listagem_so_aprovados(self, criar_usuario):
        """User listings skip pending accounts and optionally inactive ones."""
        ativo = criar_usuario("Ana")
        inativo = criar_usuario("Beto")
        criar_usuario("Caio", aprovado=False)
        definir_ativo_usuario(inativo, False)
        assert [u["id"] for u in get_usuarios()] == [ativo]
        assert [u["id"] for u in get_usuarios(ativos=False)] == [ativo, inativo]

    def test_alterar_perfil(self, criar_usuario):
        """Profiles can be changed to known ones only."""
        usuario = criar_usuario()
        alterar_perfil(usuario, "lider")
        assert get_usuario(usuario)["perfil"] == "lider"
        with pytest.raises(RegraNegocioError):
            alterar_perfil(usuario, "bispo")


class TestPermissoes:
    """Role based access."""

    @pytest.mark.parametrize("perfil,permissao,esperado", [
        ("admin", "qualquer.coisa", True),
        ("lider", "agenda.editar", True),
        ("lider", "configuracoes.editar", False),
        ("membro", "agenda.ver", True),
        ("membro", "agenda.editar", False),
        ("membro", "agenda", True),
        ("membro", "integrantes", False),
        ("vocal", "ensaios.editar", True),
        ("desconhecido", "agenda.ver", False),
    ])
    def test_tem_permissao(self, perfil, permissao, esperado):
        """Permissions follow the profile table, with area-wide checks."""
        assert tem_permissao({"perfil": perfil}, permissao) is esperado

    def test_sem_usuario(self):
        """No user means no access."""
        assert tem_permissao(None, "agenda.ver") is False


class TestConfiguracoesDeConta:
    """Password changes, activation and the access log."""

    def test_alterar_senha(self, criar_usuario):
        """The current password is checked when given."""
        usuario = criar_usuario(email="ana@agenda.test")
        with pytest.raises(RegraNegocioError):
            alterar_senha_usuario(usuario, "novasenha", senha_atual="errada")
        alterar_senha_usuario(usuario, "novasenha", senha_atual=SENHA_PADRAO)
        assert autenticar_usuario("ana@agenda.test", "novasenha")["id"] == usuario

    def test_senha_curta(self, criar_usuario):
        """New passwords need six characters."""
        with pytest.raises(RegraNegocioError):
            alterar_senha_usuario(criar_usuario(), "123")

    def test_usuario_inexistente(self):
        """Unknown users raise."""
        with pytest.raises(RegistroNaoEncontrado):
            alterar_senha_usuario(999, "novasenha")

    def test_desativado_nao_entra(self, criar_usuario):
        """Deactivated accounts cannot log in."""
        usuario = criar_usuario(email="beto@agenda.test")
        definir_ativo_usuario(usuario, False)
        assert autenticar_usuario("beto@agenda.test", SENHA_PADRAO) is None
        definir_ativo_usuario(usuario, True)
        assert autenticar_usuario("beto@agenda.test", SENHA_PADRAO)["id"] == usuario

    def test_logs(self, criar_usuario):
        """Actions are logged newest first."""
        usuario = criar_usuario(nome="Ana", email="ana@agenda.test")
        autenticar_usuario("ana@agenda.test", SENHA_PADRAO)
        definir_ativo_usuario(usuario, True, alterado_por=usuario)
        logs = get_logs_acesso()
        assert [l["acao"] for l in logs] == ["usuario.ativar", "login"]
        assert logs[1]["usuario_nome"] == "Ana"
        assert len(get_logs_acesso(limite=1)) == 1
