# ==============================================================================
# WSGI ENTRY POINT - Para servidores de producción
# ==============================================================================
# Uso con gunicorn:
#   gunicorn wsgi:app
#
# Variables de entorno:
#   LOJASOCIAL_DATA_DIR    → Directorio del archivo de datos
#   LOJASOCIAL_SECRET_KEY  → Clave secreta de Flask (obligatoria en producción)
#   LOJASOCIAL_PROFILING   → 0 para desactivar el profiling
#   LOJASOCIAL_LOGS_DIR    → Directorio de logs de rendimiento
# ==============================================================================

from lojasocial.main import create_app

app = create_app()

if __name__ == '__main__':
    app.run(host='127.0.0.1', port=5000)
