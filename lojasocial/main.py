# ==============================================================================
# API HTTP - Tienda social
# ==============================================================================
# Capa delgada sobre los servicios: parsea JSON, llama al servicio y traduce
# el resultado {'ok': ...} a una respuesta HTTP.
#
# El usuario que actúa llega en la cabecera X-User-Id (lo resuelve el
# proveedor de autenticación delante de esta API).
# ==============================================================================

import os
from functools import wraps

from flask import Flask, g, request
from werkzeug.exceptions import HTTPException

from lojasocial.app_container import AppContainer, get_container
from lojasocial.performance_logger import get_function_stats, init_profiling
from lojasocial.repositories.base import to_document_value
from lojasocial.services import ErrorType, ServiceError


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIGURACIÓN
# ═══════════════════════════════════════════════════════════════════════════════
# SECRET_KEY: En producción DEBE definirse via variable de entorno
# Comando: export LOJASOCIAL_SECRET_KEY="clave_secreta_larga_y_aleatoria"
_DEFAULT_SECRET = "lojasocial_dev_secret_key_change_in_production"
_SECRET_KEY = os.environ.get("LOJASOCIAL_SECRET_KEY")

PRODUCTION_MODE = os.environ.get("LOJASOCIAL_PRODUCTION", "0") == "1"

# Cabecera con el ID del usuario autenticado
USER_HEADER = 'X-User-Id'

# Tipo de error → código HTTP
ERROR_STATUS = {
    ErrorType.VALIDATION.value: 400,
    ErrorType.NOT_FOUND.value: 404,
    ErrorType.INSUFFICIENT_STOCK.value: 409,
    ErrorType.STORE.value: 503,
}


def _respond(result, status=200):
    """Convierte un resultado de servicio en respuesta JSON."""
    payload = to_document_value(result)
    if result.get('ok'):
        return payload, status
    status = ERROR_STATUS.get(result.get('error_type'), 400)
    if status >= 500:
        print(f"[API] {request.method} {request.path}: {result.get('error')}")
    return payload, status


def _not_found(message):
    return {'ok': False, 'error': message, 'error_type': ErrorType.NOT_FOUND.value}, 404


def actor_required(f):
    """Exige la cabecera X-User-Id y la deja en g.actor_id."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        actor_id = (request.headers.get(USER_HEADER) or '').strip()
        if not actor_id:
            return {
                'ok': False,
                'error': 'Usuario no autenticado',
                'error_type': ErrorType.VALIDATION.value,
            }, 401
        g.actor_id = actor_id
        return f(*args, **kwargs)
    return wrapper


def create_app(container: AppContainer = None) -> Flask:
    """
    Crea la aplicación Flask.

    Args:
        container: Contenedor de dependencias (por defecto el global)

    Returns:
        Aplicación configurada
    """
    app = Flask(__name__)

    if PRODUCTION_MODE and not _SECRET_KEY:
        print("[ADVERTENCIA] LOJASOCIAL_PRODUCTION activo sin LOJASOCIAL_SECRET_KEY definida")
    app.secret_key = _SECRET_KEY or _DEFAULT_SECRET

    container = container or get_container()
    app.config['CONTAINER'] = container

    init_profiling(app, user_header=USER_HEADER)

    @app.errorhandler(HTTPException)
    def _http_error(e):
        return {'ok': False, 'error': e.description, 'error_type': e.name}, e.code

    @app.errorhandler(ServiceError)
    def _service_error(e):
        return _respond(e.to_result())

    def body():
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}

    # =========================================================================
    # PRODUCTOS Y STOCK
    # =========================================================================

    @app.route('/api/products', methods=['GET'])
    def api_list_products():
        """Lista productos. ?filter=low_stock|available  ?q=texto"""
        service = container.product_service
        view = request.args.get('filter')
        if view == 'low_stock':
            products = service.get_low_stock_products()
        elif view == 'available':
            products = service.get_available_products()
        elif request.args.get('q'):
            products = service.search_products(request.args['q'])
        else:
            products = service.get_active_products()
        return {'ok': True, 'products': to_document_value(products)}

    @app.route('/api/products', methods=['POST'])
    @actor_required
    def api_create_product():
        data = body()
        result = container.product_service.create_product(
            name=data.get('name'),
            created_by=g.actor_id,
            category=data.get('category', 'OTHER'),
            unit=data.get('unit', 'UNIT'),
            minimum_stock=data.get('minimum_stock', 0),
            initial_stock=data.get('initial_stock', 0),
            description=data.get('description', ''),
            barcode=data.get('barcode'),
            expiry_date=data.get('expiry_date'),
        )
        return _respond(result, 201)

    @app.route('/api/products/<product_id>', methods=['GET'])
    def api_get_product(product_id):
        product = container.product_service.get_product(product_id)
        if product is None:
            return _not_found(f'Producto {product_id} no encontrado')
        return {'ok': True, 'product': product.to_dict()}

    @app.route('/api/products/<product_id>/stock', methods=['GET'])
    def api_get_stock(product_id):
        return _respond(container.stock_service.get_current_stock(product_id))

    @app.route('/api/products/<product_id>/movements', methods=['GET'])
    def api_get_movements(product_id):
        return _respond(container.stock_service.get_movements(product_id))

    @app.route('/api/products/<product_id>/movements', methods=['POST'])
    @actor_required
    def api_apply_movement(product_id):
        data = body()
        result = container.stock_service.apply_movement(
            product_id,
            data.get('type'),
            data.get('quantity'),
            g.actor_id,
            data.get('reason'),
            reference_document=data.get('reference_document'),
            notes=data.get('notes', ''),
        )
        return _respond(result, 201)

    # =========================================================================
    # KITS
    # =========================================================================

    @app.route('/api/kits', methods=['GET'])
    def api_list_kits():
        return {'ok': True, 'kits': to_document_value(container.kit_service.get_active_kits())}

    @app.route('/api/kits', methods=['POST'])
    @actor_required
    def api_create_kit():
        data = body()
        result = container.kit_service.create_kit(
            name=data.get('name'),
            items=data.get('items') or [],
            created_by=g.actor_id,
            description=data.get('description', ''),
        )
        return _respond(result, 201)

    @app.route('/api/kits/<kit_id>', methods=['GET'])
    def api_get_kit(kit_id):
        kit = container.kit_service.get_kit(kit_id)
        if kit is None:
            return _not_found(f'Kit {kit_id} no encontrado')
        return {'ok': True, 'kit': kit.to_dict()}

    @app.route('/api/kits/<kit_id>/availability', methods=['GET'])
    def api_kit_availability(kit_id):
        return _respond(container.availability_service.get_kit_availability_details(kit_id))

    # =========================================================================
    # BENEFICIARIOS
    # =========================================================================

    @app.route('/api/beneficiaries', methods=['POST'])
    @actor_required
    def api_create_beneficiary():
        data = body()
        result = container.beneficiary_service.create_beneficiary(
            user_id=data.get('user_id'),
            name=data.get('name'),
            created_by=g.actor_id,
            student_number=data.get('student_number', ''),
            email=data.get('email', ''),
            phone=data.get('phone', ''),
        )
        return _respond(result, 201)

    @app.route('/api/beneficiaries/<beneficiary_id>', methods=['GET'])
    def api_get_beneficiary(beneficiary_id):
        beneficiary = container.beneficiary_service.get_beneficiary(beneficiary_id)
        if beneficiary is None:
            return _not_found(f'Beneficiario {beneficiary_id} no encontrado')
        return {'ok': True, 'beneficiary': beneficiary.to_dict()}

    # =========================================================================
    # ENTREGAS
    # =========================================================================

    @app.route('/api/deliveries', methods=['GET'])
    def api_list_deliveries():
        """Lista entregas. ?status=...  ?beneficiary_id=...  ?q=texto"""
        service = container.delivery_service
        if request.args.get('status'):
            result = service.get_deliveries_by_status(request.args['status'])
            if not result['ok']:
                return _respond(result)
            deliveries = result['deliveries']
        elif request.args.get('beneficiary_id'):
            deliveries = service.get_deliveries_by_beneficiary(request.args['beneficiary_id'])
        else:
            deliveries = service.search_deliveries(request.args.get('q', ''))
        return {'ok': True, 'deliveries': to_document_value(deliveries)}

    @app.route('/api/deliveries', methods=['POST'])
    @actor_required
    def api_create_delivery():
        data = body()
        result = container.delivery_service.create_delivery(
            data.get('beneficiary_id'),
            data.get('kit_id'),
            data.get('scheduled_date'),
            g.actor_id,
            notes=data.get('notes', ''),
        )
        return _respond(result, 201)

    @app.route('/api/deliveries/requests', methods=['POST'])
    @actor_required
    def api_request_delivery():
        data = body()
        result = container.delivery_service.request_delivery(
            data.get('beneficiary_id'),
            data.get('kit_id'),
            notes=data.get('notes', ''),
            requested_by=g.actor_id,
        )
        return _respond(result, 201)

    @app.route('/api/deliveries/upcoming', methods=['GET'])
    def api_upcoming_deliveries():
        days = request.args.get('days', default=7, type=int)
        deliveries = container.delivery_service.get_upcoming_deliveries(days)
        return {'ok': True, 'deliveries': to_document_value(deliveries)}

    @app.route('/api/deliveries/<delivery_id>', methods=['GET'])
    def api_get_delivery(delivery_id):
        delivery = container.delivery_service.get_delivery(delivery_id)
        if delivery is None:
            return _not_found(f'Entrega {delivery_id} no encontrada')
        return {'ok': True, 'delivery': delivery.to_dict()}

    @app.route('/api/deliveries/<delivery_id>/can-confirm', methods=['GET'])
    def api_can_confirm(delivery_id):
        return _respond(container.delivery_service.validate_can_confirm(delivery_id))

    @app.route('/api/deliveries/<delivery_id>/approve', methods=['POST'])
    @actor_required
    def api_approve_delivery(delivery_id):
        return _respond(container.delivery_service.approve_delivery_request(delivery_id, g.actor_id))

    @app.route('/api/deliveries/<delivery_id>/reject', methods=['POST'])
    @actor_required
    def api_reject_delivery(delivery_id):
        result = container.delivery_service.reject_delivery_request(
            delivery_id, g.actor_id, body().get('reason')
        )
        return _respond(result)

    @app.route('/api/deliveries/<delivery_id>/schedule', methods=['POST'])
    @actor_required
    def api_schedule_delivery(delivery_id):
        data = body()
        result = container.delivery_service.schedule_delivery(
            delivery_id, data.get('scheduled_date'), data.get('notes'), g.actor_id
        )
        return _respond(result)

    @app.route('/api/deliveries/<delivery_id>/confirm', methods=['POST'])
    @actor_required
    def api_confirm_delivery(delivery_id):
        return _respond(container.delivery_service.confirm_delivery(delivery_id, g.actor_id))

    @app.route('/api/deliveries/<delivery_id>/cancel', methods=['POST'])
    @actor_required
    def api_cancel_delivery(delivery_id):
        result = container.delivery_service.cancel_delivery(
            delivery_id, g.actor_id, body().get('reason')
        )
        return _respond(result)

    # =========================================================================
    # KITS PERSONALIZADOS
    # =========================================================================

    @app.route('/api/custom-kits/from-kit/<kit_id>', methods=['GET'])
    def api_custom_kit_from_kit(kit_id):
        return _respond(container.custom_kit_service.start_from_kit(kit_id))

    @app.route('/api/custom-kits/validate', methods=['POST'])
    def api_validate_custom_kit():
        service = container.custom_kit_service
        parsed = service.parse_custom_kit(body().get('custom_kit') or {})
        if not parsed['ok']:
            return _respond(parsed)
        return _respond(service.validate(parsed['custom_kit']))

    @app.route('/api/custom-kits/submit', methods=['POST'])
    @actor_required
    def api_submit_custom_kit():
        data = body()
        service = container.custom_kit_service
        parsed = service.parse_custom_kit(data.get('custom_kit') or {})
        if not parsed['ok']:
            return _respond(parsed)
        result = service.submit(
            data.get('beneficiary_id') or '', parsed['custom_kit'], data.get('notes', '')
        )
        return _respond(result, 201)

    # =========================================================================
    # DIAGNÓSTICO
    # =========================================================================

    @app.route('/api/admin/performance', methods=['GET'])
    def api_performance_stats():
        return {'ok': True, 'functions': get_function_stats()}

    return app
