# ==============================================================================
# REPOSITORIO BASE - Almacén de documentos JSON y repositorios tipados
# ==============================================================================
# Todas las colecciones (productos, kits, entregas, ...) viven en un único
# documento JSON: {coleccion: {id: documento}}. Así un commit que toca varias
# colecciones (stock + movimientos + entrega) se escribe de forma atómica.
# ==============================================================================

import copy
import json
import os
import threading
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple

from .live_query import LiveQuery


class StoreError(Exception):
    """Error del almacén de documentos (lectura, escritura o serialización)."""


class JSONDocumentStore:
    """
    Almacén de documentos en memoria con persistencia en un archivo JSON.

    - Un único lock reentrante serializa todas las escrituras.
    - transaction() guarda el valor original de cada documento que toca y
      lo restaura si algo falla, por lo que ninguna operación deja cambios
      parciales. El costo de deshacer depende de lo modificado, no del
      tamaño del almacén (el commit sí reescribe el archivo completo).
    - Tras cada commit se notifica a las consultas en vivo de las
      colecciones tocadas.

    Con file_path None (o ':memory:') no hay persistencia; útil para tests.
    """

    MEMORY = ':memory:'

    def __init__(self, file_path: Optional[str] = None):
        """
        Inicializa el almacén y carga los datos del archivo si existe.

        Args:
            file_path: Ruta absoluta al archivo JSON de datos
        """
        self.file_path = None if file_path in (None, self.MEMORY) else file_path
        self._lock = threading.RLock()
        self._depth = 0
        self._touched: Set[str] = set()
        self._undo: List[Dict[Tuple[str, Optional[str]], Any]] = []
        self._subscribers: Dict[str, List[LiveQuery]] = defaultdict(list)
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = self._read_raw()

    # =========================================================================
    # LECTURA / ESCRITURA DEL ARCHIVO
    # =========================================================================

    def _read_raw(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """
        Lee los datos crudos del archivo JSON.

        Returns:
            Datos parseados, o un almacén vacío si no hay archivo
        """
        if not self.file_path:
            return {}
        with self._lock:
            try:
                with open(self.file_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except FileNotFoundError:
                return {}
            except json.JSONDecodeError:
                # Si el archivo está corrupto, arrancar con datos vacíos
                print(f"[STORE] Archivo de datos corrupto, se ignora: {self.file_path}")
                return {}
        return data if isinstance(data, dict) else {}

    def _write_raw(self, data: Dict[str, Any]) -> None:
        """
        Escribe datos al archivo JSON.

        Args:
            data: Datos a serializar y escribir

        Raises:
            StoreError: Si hay error de escritura o serialización
        """
        if not self.file_path:
            return
        with self._lock:
            # Escribir a archivo temporal primero para atomicidad
            temp_path = self.file_path + '.tmp'
            try:
                directory = os.path.dirname(self.file_path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                with open(temp_path, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                # Reemplazar archivo original (operación atómica en la mayoría de sistemas)
                os.replace(temp_path, self.file_path)
            except (OSError, TypeError, ValueError) as e:
                # Limpiar archivo temporal si algo falla
                if os.path.exists(temp_path):
                    os.remove(temp_path)
                raise StoreError(f"No se pudo guardar {self.file_path}: {e}") from e

    def reload(self) -> None:
        """
        Recarga los datos desde el archivo.
        Útil para sincronizar después de cambios externos.
        """
        with self._lock:
            self._data = self._read_raw()
            touched = set(self._data.keys()) | set(self._subscribers.keys())
            self._notify(touched)

    # =========================================================================
    # TRANSACCIONES
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator['JSONDocumentStore']:
        """
        Agrupa lecturas y escrituras en una unidad atómica.

        Cada nivel lleva un registro de deshacer con el valor original de
        los documentos que modifica: una excepción deshace solo los cambios
        hechos dentro de ese nivel y se propaga. El nivel externo persiste y
        notifica al terminar sin errores.

        Raises:
            StoreError: Si falla la persistencia (los cambios se deshacen)
        """
        with self._lock:
            undo: Dict[Tuple[str, Optional[str]], Any] = {}
            self._undo.append(undo)
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._rollback(undo)
                self._undo.pop()
                self._depth -= 1
                if self._depth == 0:
                    self._touched = set()
                raise

            self._undo.pop()
            self._depth -= 1
            if self._depth > 0:
                # El nivel padre hereda lo necesario para deshacer este nivel
                parent = self._undo[-1]
                for key, original in undo.items():
                    parent.setdefault(key, original)
                return

            touched, self._touched = self._touched, set()
            if not touched:
                return
            try:
                self._write_raw(self._data)
            except StoreError:
                self._rollback(undo)
                raise
            self._notify(touched)

    def _remember(self, collection: str, doc_id: str, keep_order: bool = False) -> None:
        """
        Guarda el valor original de un documento antes de modificarlo en
        este nivel. Con keep_order también el orden de la colección, para
        que un documento borrado vuelva a su posición.
        """
        undo = self._undo[-1]
        docs = self._data.get(collection, {})
        key = (collection, doc_id)
        if key not in undo:
            original = docs.get(doc_id)
            undo[key] = copy.deepcopy(original) if original is not None else None
        if keep_order and (collection, None) not in undo:
            undo[(collection, None)] = list(docs.keys())

    def _rollback(self, undo: Dict[Tuple[str, Optional[str]], Any]) -> None:
        for (collection, doc_id), original in undo.items():
            if doc_id is None:
                continue
            docs = self._data.setdefault(collection, {})
            if original is None:
                docs.pop(doc_id, None)
            else:
                docs[doc_id] = original
        for (collection, doc_id), order in undo.items():
            if doc_id is None and collection in self._data:
                docs = self._data[collection]
                self._data[collection] = {k: docs[k] for k in order if k in docs}

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    # =========================================================================
    # OPERACIONES SOBRE DOCUMENTOS
    # =========================================================================

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """
        Obtiene una copia de un documento.

        Args:
            collection: Nombre de la colección
            doc_id: ID del documento

        Returns:
            Copia del documento o None si no existe
        """
        with self._lock:
            doc = self._data.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def all(self, collection: str) -> List[Dict[str, Any]]:
        """Copia de todos los documentos de una colección (orden de inserción)."""
        with self._lock:
            return copy.deepcopy(list(self._data.get(collection, {}).values()))

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._data.get(collection, {}))

    def ids(self, collection: str) -> List[str]:
        """IDs de la colección en orden de inserción (sin copiar documentos)."""
        with self._lock:
            return list(self._data.get(collection, {}).keys())

    def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """
        Inserta un documento. Si no trae ID se genera uno.

        Returns:
            Copia del documento insertado (con ID)

        Raises:
            StoreError: Si el ID ya existe
        """
        document = copy.deepcopy(document)
        doc_id = document.get('id') or uuid.uuid4().hex
        document['id'] = doc_id
        with self.transaction():
            docs = self._data.setdefault(collection, {})
            if doc_id in docs:
                raise StoreError(f"Ya existe {collection}/{doc_id}")
            self._remember(collection, doc_id)
            docs[doc_id] = document
            self._touched.add(collection)
        return copy.deepcopy(document)

    def update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """
        Actualización parcial de un documento.

        Returns:
            Copia del documento actualizado, o None si no existe
        """
        with self.transaction():
            doc = self._data.get(collection, {}).get(doc_id)
            if doc is None:
                return None
            self._remember(collection, doc_id)
            doc.update(copy.deepcopy(fields))
            doc['id'] = doc_id
            self._touched.add(collection)
            return copy.deepcopy(doc)

    def delete(self, collection: str, doc_id: str) -> bool:
        """Elimina un documento. Solo para colecciones sin ciclo de vida (auditoría)."""
        with self.transaction():
            if doc_id not in self._data.get(collection, {}):
                return False
            self._remember(collection, doc_id, keep_order=True)
            removed = self._data[collection].pop(doc_id, None)
            if removed is None:
                return False
            self._touched.add(collection)
            return True

    # =========================================================================
    # CONSULTAS EN VIVO
    # =========================================================================

    def subscribe(
        self,
        collection: str,
        transform: Callable[[List[Dict[str, Any]]], Any]
    ) -> LiveQuery:
        """
        Crea una consulta en vivo sobre una colección.
        El primer snapshot se publica de inmediato.
        """
        with self._lock:
            live = LiveQuery(
                transform,
                on_close=lambda q: self._unsubscribe(collection, q)
            )
            self._subscribers[collection].append(live)
            live.publish(self.all(collection))
            return live

    def _unsubscribe(self, collection: str, live: LiveQuery) -> None:
        with self._lock:
            subscribers = self._subscribers.get(collection, [])
            if live in subscribers:
                subscribers.remove(live)

    def subscriber_count(self, collection: str) -> int:
        with self._lock:
            return len(self._subscribers.get(collection, []))

    def _notify(self, collections: Set[str]) -> None:
        """Publica un snapshot nuevo a cada suscriptor de las colecciones tocadas."""
        for collection in collections:
            subscribers = list(self._subscribers.get(collection, []))
            if not subscribers:
                continue
            for live in subscribers:
                live.publish(self.all(collection))


# ==============================================================================
# REPOSITORIOS TIPADOS
# ==============================================================================

def to_document_value(value: Any) -> Any:
    """Convierte valores de Python (enums, fechas, entidades) a JSON."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, 'to_dict'):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [to_document_value(v) for v in value]
    if isinstance(value, dict):
        return {k: to_document_value(v) for k, v in value.items()}
    return value


class BaseRepository(ABC):
    """
    Clase base para los repositorios de entidades.

    Cada repositorio trabaja sobre una colección del almacén y convierte
    entre documentos (dict) y entidades (dataclasses).
    """

    COLLECTION = ''

    # Colecciones append-only (ej: movimientos de stock)
    IMMUTABLE = False

    def __init__(self, store: JSONDocumentStore):
        """
        Args:
            store: Almacén de documentos compartido
        """
        self.store = store

    @abstractmethod
    def _to_entity(self, data: Dict[str, Any]) -> Any:
        """Construye la entidad a partir del documento."""
        pass

    def transaction(self):
        """Atajo a store.transaction()."""
        return self.store.transaction()

    def reload(self) -> None:
        self.store.reload()

    # =========================================================================
    # LECTURA
    # =========================================================================

    def get_by_id(self, record_id: str) -> Optional[Any]:
        """
        Obtiene una entidad por su ID.

        Returns:
            Entidad o None si no existe
        """
        if not record_id:
            return None
        data = self.store.get(self.COLLECTION, record_id)
        return self._to_entity(data) if data is not None else None

    def get_all(self) -> List[Any]:
        """Obtiene todas las entidades de la colección."""
        return [self._to_entity(d) for d in self.store.all(self.COLLECTION)]

    def find(
        self,
        predicate: Optional[Callable[[Any], bool]] = None,
        sort_key: Optional[Callable[[Any], Any]] = None,
        reverse: bool = False
    ) -> List[Any]:
        """
        Busca entidades que cumplan un predicado.

        Args:
            predicate: Filtro sobre la entidad (None = todas)
            sort_key: Clave de ordenamiento opcional
            reverse: Orden descendente

        Returns:
            Lista de entidades
        """
        return self._query(predicate, sort_key, reverse)(self.store.all(self.COLLECTION))

    def watch(
        self,
        predicate: Optional[Callable[[Any], bool]] = None,
        sort_key: Optional[Callable[[Any], Any]] = None,
        reverse: bool = False
    ) -> LiveQuery:
        """
        Consulta en vivo: igual que find() pero entrega un snapshot nuevo
        cada vez que cambia la colección.
        """
        return self.store.subscribe(self.COLLECTION, self._query(predicate, sort_key, reverse))

    def _query(self, predicate, sort_key, reverse) -> Callable[[List[Dict[str, Any]]], List[Any]]:
        def run(documents: List[Dict[str, Any]]) -> List[Any]:
            entities = [self._to_entity(d) for d in documents]
            if predicate is not None:
                entities = [e for e in entities if predicate(e)]
            if sort_key is not None:
                entities.sort(key=sort_key, reverse=reverse)
            return entities
        return run

    # =========================================================================
    # ESCRITURA
    # =========================================================================

    def create(self, entity: Any) -> Any:
        """
        Guarda una entidad nueva. Si no tiene ID se genera uno.

        Returns:
            La entidad guardada (con ID)
        """
        data = self.store.insert(self.COLLECTION, entity.to_dict())
        return self._to_entity(data)

    def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[Any]:
        """
        Actualización parcial.

        Args:
            record_id: ID de la entidad
            fields: Campos a modificar (acepta enums, fechas y entidades)

        Returns:
            Entidad actualizada o None si no existe

        Raises:
            StoreError: Si la colección es inmutable
        """
        if self.IMMUTABLE:
            raise StoreError(f"La colección {self.COLLECTION} no admite modificaciones")
        data = self.store.update(self.COLLECTION, record_id, to_document_value(fields))
        return self._to_entity(data) if data is not None else None
