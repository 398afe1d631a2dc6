# ==============================================================================
# CONSULTAS EN VIVO - Canal de snapshots
# ==============================================================================
# Una consulta en vivo entrega el resultado completo de la consulta cada vez
# que cambia la colección observada. No hay diffs: siempre un snapshot nuevo.
# Un suscriptor que no lee solo conserva el snapshot más reciente.
#
# Uso:
#     with delivery_repo.watch(lambda d: d.status == DeliveryStatus.SCHEDULED) as live:
#         for snapshot in live:
#             ...
# ==============================================================================

import queue
import threading
from typing import Any, Callable, Dict, List, Optional


# Marca de fin de canal
_CLOSED = object()


class LiveQuery:
    """
    Suscripción a una colección del almacén de documentos.

    El primer snapshot se publica al suscribirse; luego uno nuevo tras cada
    commit que toque la colección. Cerrar la suscripción solo afecta a este
    canal: los demás suscriptores siguen recibiendo snapshots.
    """

    def __init__(
        self,
        transform: Callable[[List[Dict[str, Any]]], Any],
        on_close: Optional[Callable[['LiveQuery'], None]] = None
    ):
        """
        Args:
            transform: Convierte los documentos crudos de la colección en el
                resultado de la consulta (filtrado, entidades, orden)
            on_close: Callback para desregistrar el canal en el almacén
        """
        self._transform = transform
        self._on_close = on_close
        self._queue: 'queue.Queue[Any]' = queue.Queue(maxsize=1)
        self._mutex = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, documents: List[Dict[str, Any]]) -> None:
        """
        Publica un snapshot nuevo. Lo llama el almacén tras cada commit.
        Si el anterior no se leyó, se reemplaza.
        """
        if self._closed:
            return
        snapshot = self._transform(documents)
        with self._mutex:
            if self._closed:
                return
            self._discard_pending()
            self._queue.put_nowait(snapshot)

    def _discard_pending(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return

    def get(self, timeout: Optional[float] = None) -> Optional[Any]:
        """
        Espera el siguiente snapshot.

        Args:
            timeout: Segundos máximos de espera (None = sin límite)

        Returns:
            El snapshot, o None si venció el timeout o el canal está cerrado
        """
        if self._closed:
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            return None
        return item

    def latest(self) -> Optional[Any]:
        """Descarta snapshots intermedios y retorna el más reciente (sin bloquear)."""
        result = None
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return result
            if item is _CLOSED:
                return result
            result = item

    def close(self) -> None:
        """Cierra el canal: no se entregan más snapshots."""
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            self._on_close(self)

        # Vaciar lo pendiente y despertar a quien esté esperando
        with self._mutex:
            self._discard_pending()
            self._queue.put_nowait(_CLOSED)

    def __iter__(self):
        return self

    def __next__(self) -> Any:
        if self._closed:
            raise StopIteration
        item = self._queue.get()
        if item is _CLOSED:
            raise StopIteration
        return item

    def __enter__(self) -> 'LiveQuery':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
