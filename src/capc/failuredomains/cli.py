import argparse
import io
import os
import sys
from argparse import ArgumentParser
from typing import Any, Callable, Dict, Iterable, List, Optional, TextIO

from capc.failuredomains import fdlogging as logging
from capc.failuredomains import fdtypes as ft
from capc.failuredomains.balancer import (
    FreeIPValidatingFailureDomainBalancer,
    new_failure_domain_balancer,
)
from capc.failuredomains.clientfactory import ClientFactory, new_client_factory
from capc.failuredomains.machine import (
    CONTROL_PLANE_LABEL,
    CAPIMachine,
    CloudStackMachine,
    FailureDomainSpec,
)
from capc.failuredomains.util import json_dump, load_config, partition_single


def str_list(c: str) -> List[str]:
    return [x.strip() for x in c.rstrip(",").split(",") if x.strip()]


class FailureDomainCLI:
    def __init__(self, project_name: str) -> None:
        self.project_name = project_name

    def _client_factory(self, config: Dict) -> ClientFactory:
        return new_client_factory(config)

    def _failure_domains(
        self, config: Dict, names: Optional[List[str]] = None
    ) -> List[FailureDomainSpec]:
        fds = [FailureDomainSpec.from_dict(d) for d in config.get("failure_domains", [])]
        by_name = partition_single(fds, lambda fd: fd.name)

        if not names:
            return fds

        missing = [n for n in names if n not in by_name]
        if missing:
            raise RuntimeError(
                "Unknown failure domain(s) {}. Expected one of {}".format(
                    missing, sorted(by_name.keys())
                )
            )
        return [by_name[ft.FailureDomainName(n)] for n in names]

    def config_parser(self, parser: ArgumentParser) -> None:
        pass

    def config(self, config: Dict, writer: Optional[TextIO] = None) -> None:
        """Writes the effective config to stdout"""
        json_dump(
            {k: v for k, v in config.items() if not k.startswith("_")},
            writer or sys.stdout,
        )

    def capacity_parser(self, parser: ArgumentParser) -> None:
        parser.add_argument(
            "--failure-domains",
            "-f",
            type=str_list,
            default=None,
            help="Comma separated list of failure domains to inspect. Default is all.",
        ).completer = self._failure_domain_completer  # type: ignore

    def capacity(
        self,
        config: Dict,
        failure_domains: Optional[List[str]] = None,
        writer: Optional[TextIO] = None,
    ) -> None:
        """Lists total and free public IPs per failure domain, grouped by network"""
        fds = self._failure_domains(config, failure_domains)
        client_factory = self._client_factory(config)
        try:
            by_network = FreeIPValidatingFailureDomainBalancer(
                client_factory
            ).discover_free_ips(fds)
        finally:
            client_factory.close()
        json_dump(by_network, writer or sys.stdout)

    def assign_parser(self, parser: ArgumentParser) -> None:
        parser.add_argument("--machine", "-m", required=True)
        parser.add_argument(
            "--failure-domain",
            default="",
            help="The failure domain the machine currently has, if any.",
        ).completer = self._failure_domain_completer  # type: ignore
        parser.add_argument(
            "--failed",
            action="store_true",
            default=False,
            help="The machine failed to launch in its current failure domain.",
        )
        parser.add_argument(
            "--hint", default=None, help="The failure domain requested by CAPI."
        ).completer = self._failure_domain_completer  # type: ignore
        parser.add_argument("--control-plane", action="store_true", default=False)

    def assign(
        self,
        config: Dict,
        machine: str,
        failure_domain: str = "",
        failed: bool = False,
        hint: Optional[str] = None,
        control_plane: bool = False,
        writer: Optional[TextIO] = None,
    ) -> None:
        """Chooses a failure domain for a machine and prints the result"""
        logging.set_context("[{}]".format(machine))

        cluster_name = ft.ClusterName(config.get("cluster_name", ""))
        cs_machine = CloudStackMachine(
            ft.MachineName(machine), ft.FailureDomainName(failure_domain)
        )
        if failed:
            cs_machine.mark_as_failed("requested from the command line")

        capi_machine = CAPIMachine(
            ft.MachineName(machine),
            cluster_name,
            failure_domain=ft.FailureDomainName(hint) if hint is not None else None,
            labels={CONTROL_PLANE_LABEL: ""} if control_plane else {},
        )

        client_factory = self._client_factory(config)
        try:
            balancer = new_failure_domain_balancer(client_factory)
            balancer.assign(cs_machine, capi_machine, self._failure_domains(config))
        finally:
            client_factory.close()

        json_dump(
            {"machine": cs_machine.to_dict(), "capi_machine": capi_machine.to_dict()},
            writer or sys.stdout,
        )

    def _failure_domain_completer(
        self,
        prefix: str,
        action: argparse.Action,
        parser: ArgumentParser,
        parsed_args: argparse.Namespace,
    ) -> List[str]:
        config_path = getattr(parsed_args, "config", None)
        if not config_path:
            return []
        try:
            config = load_config(config_path)
        except Exception:
            return []
        return [
            d["name"]
            for d in config.get("failure_domains", [])
            if d.get("name", "").startswith(prefix)
        ]

    def _invoke_autocomplete(self, parser: ArgumentParser) -> None:
        import argcomplete

        argcomplete.autocomplete(parser, always_complete_options="long")


def create_arg_parser(
    project_name: str, module: Any, default_config: Optional[str] = None
) -> ArgumentParser:
    parser = ArgumentParser(prog=project_name)
    sub_parsers = parser.add_subparsers()

    help_msg = io.StringIO()

    def add_parser(name: str, func: Callable) -> ArgumentParser:
        doc_str = (func.__doc__ or "").strip()
        doc_str = " ".join([x.strip() for x in doc_str.splitlines()])
        help_msg.write("\n    {:20} - {}".format(name, doc_str))

        config_path = default_config
        if config_path and not os.path.exists(config_path):
            config_path = None

        new_parser = sub_parsers.add_parser(name)
        new_parser.set_defaults(func=func, cmd=name)
        new_parser.add_argument(
            "--config", "-c", default=config_path, required=not bool(config_path),
        )
        return new_parser

    for attr_name in dir(module):
        if attr_name[0].isalpha() and attr_name.endswith("_parser"):
            cli_name = attr_name[: -len("_parser")]
            child_parser = add_parser(cli_name, getattr(module, cli_name))
            getattr(module, attr_name)(child_parser)

    parser.usage = help_msg.getvalue()

    if hasattr(module, "_invoke_autocomplete"):
        module._invoke_autocomplete(parser)

    return parser


def main(argv: Iterable[str], default_config: Optional[str] = None) -> None:
    module = FailureDomainCLI("fdbalancer")
    parser = create_arg_parser("fdbalancer", module, default_config)
    args = parser.parse_args(list(argv))

    if not hasattr(args, "func") or not hasattr(args, "cmd"):
        parser.print_help()
        sys.exit(1)

    # resolves includes into a single config
    args.config = load_config(args.config)
    logging.initialize_logging(args.config)

    kwargs = {}
    for k in dir(args):
        if k[0].islower() and k not in ["func", "cmd"]:
            kwargs[k] = getattr(args, k)

    try:
        args.func(**kwargs)
    except AssertionError:
        raise
    except Exception as e:
        print("Error '%s': See the rest in the log file" % str(e), file=sys.stderr)
        logging.debug("Full stacktrace", exc_info=sys.exc_info())
        sys.exit(1)


def console_main() -> None:
    main(sys.argv[1:], default_config=os.getenv("FDBALANCER_CONFIG"))


if __name__ == "__main__":
    console_main()
