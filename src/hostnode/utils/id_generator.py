import secrets

def generate_hex_id(nbytes: int = 16) -> str:
    """项目/部署对外暴露的 ID: 32 位小写十六进制。"""
    return secrets.token_hex(nbytes)
