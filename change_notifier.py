# medicloud-backend/change_notifier.py

"""
Publicação/assinatura de mudanças por coleção.

Após cada escrita, crud.py publica o snapshot completo e ordenado da coleção.
Quem assina (ex.: o WebSocket em main.py) recebe a lista inteira e substitui
a sua visão em cache, sem diff incremental.
"""

import logging
import threading
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Snapshot = List[Dict[str, Any]]
Callback = Callable[[str, Snapshot], None]

COLECOES_OBSERVAVEIS = ("usuarios", "agendamentos", "laudos")


class ChangeNotifier:
    def __init__(self):
        self._lock = threading.Lock()
        self._assinantes: Dict[str, List[Callback]] = {}

    def subscribe(self, colecao: str, callback: Callback) -> Callable[[], None]:
        """Registra o callback e retorna a função que cancela a assinatura."""
        with self._lock:
            self._assinantes.setdefault(colecao, []).append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._assinantes.get(colecao, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def has_subscribers(self, colecao: str) -> bool:
        with self._lock:
            return bool(self._assinantes.get(colecao))

    def publish(self, colecao: str, snapshot: Snapshot):
        with self._lock:
            callbacks = list(self._assinantes.get(colecao, []))

        for callback in callbacks:
            # Um assinante com erro não impede a entrega aos demais
            try:
                callback(colecao, snapshot)
            except Exception as e:
                logger.error(f"Erro ao notificar assinante da coleção '{colecao}': {e}")


# Instância global do notificador (singleton)
_notifier_instance = None

def get_notifier() -> ChangeNotifier:
    """Retorna a instância singleton do ChangeNotifier"""
    global _notifier_instance
    if _notifier_instance is None:
        _notifier_instance = ChangeNotifier()
    return _notifier_instance
