# src/hostnode/services/build/dockerfiles.py

"""合成的 Dockerfile 与静态站点服务器配置。"""

from typing import List

def _expose(ports: List[int]) -> str:
    return "\n".join(f"EXPOSE {p}" for p in ports)

def agent_dockerfile(runtime: str, ports: List[int]) -> str:
    if runtime == "python":
        return "\n".join([
            "FROM docker.io/python:3.12-slim",
            "WORKDIR /app",
            "COPY requirements.txt ./",
            "RUN pip install --no-cache-dir -r requirements.txt",
            "COPY . .",
            _expose(ports),
            'CMD ["python", "main.py"]',
        ]) + "\n"
    if runtime == "docker":
        # 通用透传：直接把 artifact 作为镜像内容
        return "\n".join([
            "FROM docker.io/node:22-alpine",
            "WORKDIR /app",
            "COPY . .",
            _expose(ports),
            'CMD ["node", "index.js"]',
        ]) + "\n"
    return "\n".join([
        "FROM docker.io/node:22-alpine",
        "WORKDIR /app",
        "COPY package*.json ./",
        "RUN npm install --production",
        "COPY . .",
        _expose(ports),
        'CMD ["node", "index.js"]',
    ]) + "\n"

def identity_agent_dockerfile(ports: List[int], include_mpc: bool, include_workspace: bool) -> str:
    lines = [
        "FROM docker.io/node:22-slim",
        "RUN apt-get update && apt-get install -y build-essential python3 && rm -rf /var/lib/apt/lists/*",
        "WORKDIR /app",
        "COPY package*.json tsconfig.json ./",
    ]
    if include_mpc:
        lines.append("COPY mpc/ ./mpc/")
    lines += [
        "RUN npm install --production=false",
        "COPY src/ ./src/",
    ]
    if include_workspace:
        lines.append("COPY workspace/ ./workspace/")
    lines += [
        "RUN npm run build",
        "ENV NODE_ENV=production",
        "ENV AUTH_SERVER_PORT=3000",
        "ENV AGID_WORKSPACE_PATH=/data/workspace",
        "ENV AGID_SESSIONS_PATH=/data/sessions",
        _expose(ports),
        'CMD ["node", "dist/start.js"]',
    ]
    return "\n".join(lines) + "\n"

def frontend_dockerfile() -> str:
    return "\n".join([
        "FROM docker.io/nginx:alpine",
        "COPY nginx.conf /etc/nginx/conf.d/default.conf",
        "COPY . /usr/share/nginx/html",
        "EXPOSE 80",
    ]) + "\n"

def nginx_conf() -> str:
    # SPA 回退：未知路径交给 index.html
    return """server {
    listen 80;
    server_name localhost;
    root /usr/share/nginx/html;
    location / {
        try_files $uri /404.html /index.html;
    }
}
"""
