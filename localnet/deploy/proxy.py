"""Reverse-proxy routing document (nginx)."""

from typing import List

from pydantic import BaseModel, Field

from ..core.types import NetworkRecord, RoutingRule

# Docker's embedded DNS, so upstreams resolve when their container comes up
DOCKER_RESOLVER = "127.0.0.11"

HEADER = """worker_processes  1;
pid               /tmp/nginx.pid;

events {
  worker_connections  1024;
}

http {
  default_type        application/octet-stream;
  sendfile            on;
  keepalive_timeout   65;
  resolver            %(resolver)s valid=10s;

  server {
    listen            %(listen_port)d;
    server_name       localhost;
"""

LOCATION = """
    location %(path)s {
      if ($request_method = OPTIONS ) {
        add_header Allow "POST, OPTIONS";
        add_header Access-Control-Allow-Headers "Origin, X-Requested-With, Content-Type, Accept";
        add_header Access-Control-Allow-Methods "POST, OPTIONS";
        add_header Access-Control-Allow-Origin "*";
        return 200;
      }

      set $upstream %(upstream_host)s:%(upstream_port)d;
      proxy_pass http://$upstream/graphql;
      proxy_set_header Origin $http_origin;
      proxy_hide_header Access-Control-Allow-Origin;
      add_header Access-Control-Allow-Origin *;
    }
"""

FOOTER = """  }
}
"""


class ProxyDocument(BaseModel):
    """nginx configuration routing public paths to node query ports."""
    listen_port: int = 80
    resolver: str = DOCKER_RESOLVER
    rules: List[RoutingRule] = Field(default_factory=list)

    def render(self) -> str:
        parts = [HEADER % {"resolver": self.resolver, "listen_port": self.listen_port}]
        for rule in self.rules:
            parts.append(LOCATION % {
                "path": rule.public_path_prefix,
                "upstream_host": rule.upstream_host,
                "upstream_port": rule.upstream_port,
            })
        parts.append(FOOTER)
        return "".join(parts)


def build_proxy(record: NetworkRecord) -> ProxyDocument:
    return ProxyDocument(rules=list(record.routing))
