# ==============================================================================
# LOJA SOCIAL - Tienda social universitaria
# ==============================================================================
# Inventario de productos donados, kits, beneficiarios y entregas.
#
# Capas:
#   models/        → Entidades (dataclasses)
#   repositories/  → Almacén de documentos JSON y repositorios
#   services/      → Lógica de negocio
#   main.py        → API HTTP (Flask)
# ==============================================================================
