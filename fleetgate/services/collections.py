# fleetgate/services/collections.py
"""
Directory collections used by the gate core.
`table` is the Directory table name (also the cache collection name),
`key` is the field that identifies a record in that table.
`server_key` marks tables whose key the Directory generates (serial columns);
those records only get a client-side key when they land in the local cache.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Collection:
    table: str
    key: str
    server_key: bool = False


VEHICLES = Collection("vehiculo", "id_vehiculo", server_key=True)
JOB_TITLES = Collection("cargo", "id_cargo", server_key=True)
BRANCHES = Collection("sucursal", "id_sucursal", server_key=True)
EMPLOYEES = Collection("empleado", "id_empleado", server_key=True)
USERS = Collection("usuario", "id_usuario", server_key=True)
APPOINTMENTS = Collection("solicitud_diagnostico", "id_solicitud_diagnostico", server_key=True)
WORK_ORDERS = Collection("orden_trabajo", "id_orden_trabajo", server_key=True)
PENDING_REGISTRATIONS = Collection("empleados_pendientes", "empleado_id")

# Movement logs: active registrations + capped history, one pair per direction
ENTRY_REGISTRATIONS = Collection("registros_ingreso", "id")
EXIT_REGISTRATIONS = Collection("registros_salida", "id")
ENTRY_HISTORY = Collection("historial_autorizados", "id")
EXIT_HISTORY = Collection("historial_salidas", "id")
