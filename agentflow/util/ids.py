import ulid


def new_id(prefix: str = "") -> str:
    """
    Genera un ID string ordenable por tiempo usando ULID.

    Los prefijos identifican la entidad: "wf_", "ver_", "grant_", "log_", "exec_".
    """
    return prefix + ulid.new().str
