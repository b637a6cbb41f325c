"""
Cache offline
Dados guardados em disco (um JSON por chave) para uso sem conexão
"""
import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from modules.excecoes import SemConexaoError
from config.settings import CACHE_DIR, CACHE_PREFIXO, CACHE_VERSAO, CACHE_DURACOES, CACHE_DURACAO_PADRAO

logger = logging.getLogger(__name__)

def agora_ms() -> int:
    return int(time.time() * 1000)

class CacheOffline:
    """Cache chave/valor com janela de validade por chave.

    Dados vencidos continuam disponíveis (obsoletos) para uso offline;
    só saem do disco em limpar_expirados, após o dobro da validade.
    """

    def __init__(self, diretorio=CACHE_DIR, versao: str = CACHE_VERSAO, duracoes: dict = None,
                 relogio=agora_ms, prefixo: str = CACHE_PREFIXO):
        self.diretorio = Path(diretorio)
        self.diretorio.mkdir(parents=True, exist_ok=True)
        self.versao = versao
        self.duracoes = CACHE_DURACOES if duracoes is None else duracoes
        self.prefixo = prefixo
        self._relogio = relogio
        self._online = True
        self._ouvintes = []
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="cache-offline")
        self._pendentes = set()

    # --- conexão ---

    @property
    def online(self) -> bool:
        return self._online

    def definir_online(self, valor: bool):
        if valor == self._online:
            return
        self._online = valor
        if valor:
            logger.info("🌐 Conexão restaurada")
        else:
            logger.warning("📴 Sem conexão - usando cache")
        for ouvinte in list(self._ouvintes):
            ouvinte(valor)

    def ao_mudar_conexao(self, callback):
        """Registra um ouvinte; retorna a função que cancela o registro"""
        self._ouvintes.append(callback)

        def cancelar():
            if callback in self._ouvintes:
                self._ouvintes.remove(callback)
        return cancelar

    # --- armazenamento ---

    def _arquivo(self, chave: str) -> Path:
        return self.diretorio / f"{self.prefixo}{chave}.json"

    def duracao(self, chave: str) -> int:
        return self.duracoes.get(chave, CACHE_DURACAO_PADRAO)

    def _ler(self, chave: str) -> dict | None:
        arquivo = self._arquivo(chave)
        if not arquivo.exists():
            return None
        try:
            with open(arquivo, encoding='utf-8') as f:
                entrada = json.load(f)
            if not isinstance(entrada, dict) or 'timestamp' not in entrada:
                raise ValueError("entrada sem timestamp")
            return entrada
        except (OSError, ValueError) as e:
            logger.error("Erro lendo cache %s: %s", chave, e)
            return None

    def definir(self, chave: str, dados):
        entrada = {'data': dados, 'timestamp': self._relogio(), 'version': self.versao}
        try:
            with self._lock:
                destino = self._arquivo(chave)
                temporario = destino.with_suffix('.tmp')
                with open(temporario, 'w', encoding='utf-8') as f:
                    json.dump(entrada, f, ensure_ascii=False, default=str)
                temporario.replace(destino)
            logger.debug("💾 Cache salvo: %s", chave)
        except OSError as e:
            logger.error("Erro salvando cache %s: %s", chave, e)
            self.limpar_expirados()

    def obter(self, chave: str):
        """Dados da chave (mesmo vencidos) ou None"""
        entrada = self._ler(chave)
        if entrada is None:
            return None
        if entrada.get('version') != self.versao:
            self.remover(chave)
            return None
        if self._relogio() - entrada['timestamp'] > self.duracao(chave):
            logger.debug("⏰ Cache vencido: %s", chave)
        return entrada.get('data')

    def obter_com_meta(self, chave: str) -> tuple:
        """(dados, obsoleto, timestamp)"""
        entrada = self._ler(chave)
        if entrada is None:
            return None, True, None
        obsoleto = self._relogio() - entrada['timestamp'] > self.duracao(chave)
        return entrada.get('data'), obsoleto, entrada['timestamp']

    def remover(self, chave: str):
        self._arquivo(chave).unlink(missing_ok=True)

    def _arquivos(self) -> list:
        return sorted(self.diretorio.glob(f"{self.prefixo}*.json"))

    def limpar_tudo(self):
        for arquivo in self._arquivos():
            arquivo.unlink(missing_ok=True)
        logger.info("🗑️ Cache limpo")

    def limpar_expirados(self) -> int:
        """Remove entradas ilegíveis ou com mais do dobro da validade"""
        removidos = 0
        agora = self._relogio()
        for arquivo in self._arquivos():
            chave = arquivo.stem[len(self.prefixo):]
            try:
                with open(arquivo, encoding='utf-8') as f:
                    timestamp = json.load(f)['timestamp']
                vencido = agora - timestamp > self.duracao(chave) * 2
            except (OSError, ValueError, KeyError, TypeError):
                vencido = True
            if vencido:
                arquivo.unlink(missing_ok=True)
                removidos += 1
        return removidos

    def info(self) -> tuple:
        """(bytes usados, quantidade de entradas)"""
        arquivos = self._arquivos()
        return sum(a.stat().st_size for a in arquivos), len(arquivos)

    # --- busca com cache ---

    def _atualizar_em_segundo_plano(self, chave: str, buscar):
        def tarefa():
            self.definir(chave, buscar())

        def concluir(futuro):
            self._pendentes.discard(futuro)
            if futuro.exception() is not None:
                logger.error("Erro atualizando cache %s: %s", chave, futuro.exception())

        futuro = self._executor.submit(tarefa)
        self._pendentes.add(futuro)
        futuro.add_done_callback(concluir)

    def aguardar_atualizacoes(self, timeout: float = None):
        wait(list(self._pendentes), timeout=timeout)

    def buscar_com_cache(self, chave: str, buscar, forcar_atualizacao: bool = False, ao_obsoleto=None):
        """Busca os dados usando o cache conforme a conexão e a validade"""
        if not self.online:
            dados = self.obter(chave)
            if dados is not None:
                logger.info("📴 Usando cache offline: %s", chave)
                return dados
            raise SemConexaoError(f"Sem conexão e sem dados em cache para '{chave}'")

        if not forcar_atualizacao:
            dados, obsoleto, _ = self.obter_com_meta(chave)
            if dados is not None and not obsoleto:
                return dados
            if dados is not None:
                logger.info("🔄 Cache obsoleto, atualizando: %s", chave)
                if ao_obsoleto:
                    ao_obsoleto(dados)
                self._atualizar_em_segundo_plano(chave, buscar)
                return dados

        try:
            dados = buscar()
        except Exception:
            dados = self.obter(chave)
            if dados is not None:
                logger.warning("⚠️ Falha na busca, usando cache: %s", chave, exc_info=True)
                return dados
            raise
        self.definir(chave, dados)
        return dados

cache_offline = CacheOffline()
