# ==============================================================================
# APP PEDIDOS - Tienda de pedidos con panel de vendedores
# ==============================================================================
# Punto de entrada: app_pedidos.main.create_app()
# ==============================================================================
