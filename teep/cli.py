#!/usr/bin/env python3
"""
cli.py - TEEP Agent / TAM broker command line
============================================================================

Key provisioning and trust setup happen out of band, before any signed
exchange:

  teep provision --role tam   --data-dir ./tam
  teep provision --role agent --data-dir ./agent
  teep trust --data-dir ./agent ./tam/tam-public.pem
  teep trust --data-dir ./tam   ./agent/agent-public.pem

Agent operations against a TAM over HTTP:

  teep --config teep.yaml request   --app-id 38b08738-227d-4f6a-b1f0-b208bc02a781
  teep --config teep.yaml unrequest --app-id 38b08738-227d-4f6a-b1f0-b208bc02a781
  teep --config teep.yaml policy-check

Serve the TAM over HTTP (host, port and path from the tam section):

  teep --config teep.yaml serve-tam

Both roles in one process over the loopback transport:

  teep demo --scenario request

Every command prints one JSON object on stdout; logs go to stderr.
"""

import argparse
import json
import pathlib
import sys
import tempfile

from teep_work.lib.errors import ErrorCode
from teep_work.lib.es256_keygen import load_or_create_identity, public_key_path
from teep_work.lib.outbound_counter import OutboundCounter
from teep_work.lib.trust_store import install_trusted_key

from . import agent as agent_mod
from . import server
from . import tam as tam_mod
from .agent import TeepAgent
from .config import load_config
from .log import configure_logging, log, log_err
from .tam import Tam
from .transport import HttpTransport, LoopbackTransport

ROLE = "CLI"
DEMO_APP_ID = "38b08738-227d-4f6a-b1f0-b208bc02a781"
LABELS = {"agent": agent_mod.LABEL, "tam": tam_mod.LABEL}


def emit(obj):
    print(json.dumps(obj, indent=2, sort_keys=True))


def result(code, **extra):
    emit(dict(result=ErrorCode(code).name, code=int(code), **extra))
    return 0 if code == ErrorCode.SUCCESS else 1


# === Key management ===
def provision(args):
    label = LABELS[args.role]
    identity = load_or_create_identity(args.data_dir, label)
    pathlib.Path(args.data_dir, "trusted").mkdir(parents=True, exist_ok=True)
    pub_p = public_key_path(args.data_dir, label)
    log(ROLE, f"{args.role} identity ready: {pub_p}")
    emit({"role": args.role, "public_key": str(pub_p), "kid": identity.kid.hex()})
    return 0


def trust(args):
    try:
        dest = install_trusted_key(args.key_file, pathlib.Path(args.data_dir) / "trusted")
    except (OSError, ValueError) as e:
        log_err(ROLE, f"FATAL: cannot trust {args.key_file}: {e}")
        return 1
    log(ROLE, f"TRUSTED: {dest}")
    emit({"trusted": str(dest)})
    return 0


# === Agent over HTTP ===
def _http_agent(args):
    cfg = load_config(args.config)
    tam_uri = args.tam_uri or cfg.agent.tam_uri
    if not tam_uri:
        raise ValueError("no TAM URI: pass --tam-uri, set agent.tam_uri or TEEP_TAM_URI")
    transport = HttpTransport(timeout=cfg.transport.timeout_sec, verify=cfg.transport.verify_tls)
    agent = TeepAgent.start(cfg.agent.data_dir, transport,
                            supported_versions=cfg.agent.supported_versions,
                            default_tam_uri=tam_uri,
                            installed=cfg.agent.installed)
    return agent, tam_uri


def request(args):
    agent, tam_uri = _http_agent(args)
    return result(agent.request_application(args.app_id, tam_uri), tam_uri=tam_uri)


def unrequest(args):
    agent, tam_uri = _http_agent(args)
    return result(agent.unrequest_application(args.app_id, tam_uri), tam_uri=tam_uri)


def policy_check(args):
    agent, tam_uri = _http_agent(args)
    return result(agent.request_policy_check(tam_uri), tam_uri=tam_uri)


# === TAM over HTTP ===
def serve_tam(args):
    cfg = load_config(args.config)
    if args.host:
        cfg.tam.host = args.host
    if args.port is not None:
        cfg.tam.port = args.port
    server.serve(cfg.tam)
    return 0


# === Loopback demo ===
def run_demo(work_dir, scenario, app_id=DEMO_APP_ID, tam_versions=(0, 0), agent_versions=(0, 0)):
    """
    Provision both roles under work_dir, exchange their public keys and run one
    Agent operation against an in-process TAM. Returns (code, messages_sent).
    """
    work_dir = pathlib.Path(work_dir)
    tam_dir, agent_dir = work_dir / "tam", work_dir / "agent"
    load_or_create_identity(tam_dir, tam_mod.LABEL)
    load_or_create_identity(agent_dir, agent_mod.LABEL)
    install_trusted_key(public_key_path(tam_dir, tam_mod.LABEL), agent_dir / "trusted")
    install_trusted_key(public_key_path(agent_dir, agent_mod.LABEL), tam_dir / "trusted")

    counter = OutboundCounter()
    agent_end, tam_end = LoopbackTransport.pair()
    tam = Tam.start(tam_dir, tam_end, counter,
                    min_version=tam_versions[0], max_version=tam_versions[1])
    tam_end.attach(tam)
    agent = TeepAgent.start(agent_dir, agent_end, counter,
                            supported_versions=agent_versions,
                            default_tam_uri=agent_end.peer_address)

    uri = agent_end.peer_address
    if scenario == "request":
        code = agent.request_application(app_id, uri)
    elif scenario == "unrequest":
        code = agent.unrequest_application(app_id, uri)
    elif scenario == "policy-check":
        code = agent.request_policy_check(uri)
    else:
        raise ValueError(f"unknown scenario {scenario!r}")
    return code, counter.value


def demo(args):
    if args.work_dir:
        code, sent = run_demo(args.work_dir, args.scenario, args.app_id)
    else:
        with tempfile.TemporaryDirectory(prefix="teep-demo-") as work_dir:
            code, sent = run_demo(work_dir, args.scenario, args.app_id)
    return result(code, scenario=args.scenario, messages_sent=sent)


def build_parser():
    ap = argparse.ArgumentParser(
        prog="teep",
        description="TEEP Agent and TAM broker."
    )
    ap.add_argument("--config", help="Path to configuration YAML file")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log protocol steps to stderr")

    sub = ap.add_subparsers(dest="cmd", required=True)

    p_prov = sub.add_parser("provision", help="Create (or reuse) a role's signing key.")
    p_prov.add_argument("--role", choices=sorted(LABELS), required=True)
    p_prov.add_argument("--data-dir", required=True)
    p_prov.set_defaults(func=provision)

    p_trust = sub.add_parser("trust", help="Install a peer public key into a data directory.")
    p_trust.add_argument("--data-dir", required=True)
    p_trust.add_argument("key_file", help="Peer public key (PEM)")
    p_trust.set_defaults(func=trust)

    for name, func, help_text in (
            ("request", request, "Ask the TAM to install an application."),
            ("unrequest", unrequest, "Tell the TAM an application is no longer needed.")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--app-id", required=True)
        p.add_argument("--tam-uri")
        p.set_defaults(func=func)

    p_check = sub.add_parser("policy-check", help="Ask the TAM for a policy check.")
    p_check.add_argument("--tam-uri")
    p_check.set_defaults(func=policy_check)

    p_serve = sub.add_parser("serve-tam", help="Serve the TAM over HTTP.")
    p_serve.add_argument("--host", help="Listen address (default: tam.host)")
    p_serve.add_argument("--port", type=int, help="Listen port (default: tam.port)")
    p_serve.set_defaults(func=serve_tam)

    p_demo = sub.add_parser("demo", help="Run an Agent/TAM exchange in one process.")
    p_demo.add_argument("--scenario", choices=["request", "unrequest", "policy-check"],
                        default="policy-check")
    p_demo.add_argument("--app-id", default=DEMO_APP_ID)
    p_demo.add_argument("--work-dir", help="Keep keys here instead of a temp directory")
    p_demo.set_defaults(func=demo)
    return ap


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    try:
        return args.func(args) or 0
    except (OSError, ValueError) as e:
        log_err(ROLE, f"FATAL: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
