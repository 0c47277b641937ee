import base64
import hashlib
import hmac
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import certifi
import requests
import urllib3
from requests.structures import CaseInsensitiveDict
from urllib3.exceptions import InsecureRequestWarning

import capc.failuredomains.fdlogging as logging
from capc.failuredomains import fdtypes as ft
from capc.failuredomains.capacity.interface import (
    CapacitySourceError,
    CapacitySourceInterface,
    PublicIpAddress,
)
from capc.failuredomains.codeanalysis import fdwrapclass
from capc.failuredomains.machine import Network

logger = logging.getLogger("capc.cloudstack")

DEFAULT_TIMEOUT = 60
ROOT_DOMAIN = "ROOT"


@fdwrapclass
class CloudStackClient(CapacitySourceInterface):
    """
    Minimal CloudStack API client, only what capacity discovery needs.
    Requests are signed as described in the CloudStack API guide: the sorted,
    url encoded and lower cased query string is signed with HMAC-SHA1.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        secret_key: str,
        verify_ssl: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not api_url:
            raise CapacitySourceError("api_url is required")
        if not api_key or not secret_key:
            raise CapacitySourceError("api_key and secret_key are required")
        self.api_url = api_url
        self.api_key = api_key
        self.secret_key = secret_key
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.session = session or _get_session(verify_ssl)

    @classmethod
    def from_config(
        cls, endpoint: Dict[str, Any], session: Optional[requests.Session] = None
    ) -> "CloudStackClient":
        verify_ssl = endpoint.get("verify_ssl", True)
        if isinstance(verify_ssl, str):
            verify_ssl = verify_ssl.lower() != "false"
        return CloudStackClient(
            api_url=endpoint.get("api_url", ""),
            api_key=endpoint.get("api_key", ""),
            secret_key=endpoint.get("secret_key", ""),
            verify_ssl=bool(verify_ssl),
            timeout=float(endpoint.get("timeout", DEFAULT_TIMEOUT)),
            session=session,
        )

    def sign(self, params: Dict[str, str]) -> str:
        query = _query_string(params)
        digest = hmac.new(
            self.secret_key.encode("utf-8"),
            query.lower().encode("utf-8"),
            hashlib.sha1,
        ).digest()
        return base64.b64encode(digest).decode("utf-8")

    def request(self, command: str, **kwargs: Any) -> Dict[str, Any]:
        params: Dict[str, str] = {}
        for key, value in kwargs.items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            params[key] = str(value)
        params["command"] = command
        params["apiKey"] = self.api_key
        params["response"] = "json"

        url = "{}?{}&signature={}".format(
            self.api_url, _query_string(params), quote(self.sign(params), safe="")
        )

        logger.debug("CloudStack request %s %s", command, kwargs)
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise CapacitySourceError(
                "{} request to {} failed: {}".format(command, self.api_url, e)
            ) from e

        try:
            body = response.json()
        except ValueError as e:
            raise CapacitySourceError(
                "{} returned invalid json (status={}): {}".format(
                    command, response.status_code, e
                )
            ) from e

        result = body.get("{}response".format(command.lower()))
        if result is None:
            result = body.get("errorresponse", {})

        if response.status_code >= 400 or "errortext" in result:
            raise CapacitySourceError(
                "{} failed with status={} errorcode={}: {}".format(
                    command,
                    response.status_code,
                    result.get("errorcode"),
                    result.get("errortext", response.text),
                )
            )
        return result

    def _list(self, command: str, item_key: str, **kwargs: Any) -> List[Dict[str, Any]]:
        return self.request(command, **kwargs).get(item_key, [])

    def resolve_network(self, network: Network) -> None:
        errors: List[str] = []

        if network.name:
            try:
                matches = [
                    n
                    for n in self._list(
                        "listNetworks", "network", keyword=network.name, listall=True
                    )
                    if n.get("name") == network.name
                ]
            except CapacitySourceError as e:
                errors.append(
                    "could not get Network ID from {}: {}".format(network.name, e)
                )
            else:
                if len(matches) == 1:
                    _copy_network(matches[0], network)
                    return
                errors.append(
                    "expected 1 Network with name {}, but got {}".format(
                        network.name, len(matches)
                    )
                )

        if not network.id:
            raise CapacitySourceError("; ".join(errors or ["network has no name or id"]))

        try:
            matches = self._list("listNetworks", "network", id=network.id, listall=True)
        except CapacitySourceError as e:
            errors.append("could not get Network by ID {}: {}".format(network.id, e))
            raise CapacitySourceError("; ".join(errors)) from e

        if len(matches) != 1:
            errors.append(
                "expected 1 Network with UUID {}, but got {}".format(
                    network.id, len(matches)
                )
            )
            raise CapacitySourceError("; ".join(errors))

        _copy_network(matches[0], network)

    def get_public_ips(self, network: Network) -> List[PublicIpAddress]:
        records = self._list(
            "listPublicIpAddresses",
            "publicipaddress",
            allocatedonly=False,
            forvirtualnetwork=True,
            listall=True,
            networkid=network.id,
        )
        return [PublicIpAddress.from_dict(r) for r in records]

    def new_client_in_domain_and_account(
        self, domain: ft.DomainPath, account: ft.AccountName
    ) -> "CloudStackClient":
        domain_id = self._find_domain_id(domain)

        users = self._list(
            "listUsers", "user", domainid=domain_id, account=account, listall=True
        )
        for user in users:
            keys = self.request("getUserKeys", id=user["id"]).get("userkeys", {})
            if keys.get("apikey") and keys.get("secretkey"):
                logger.debug(
                    "Using keys of user %s in %s/%s", user.get("username"), domain, account
                )
                return CloudStackClient(
                    self.api_url,
                    keys["apikey"],
                    keys["secretkey"],
                    verify_ssl=self.verify_ssl,
                    timeout=self.timeout,
                    session=self.session,
                )

        raise CapacitySourceError(
            "could not find sufficient user (with API keys) in domain/account {}/{}".format(
                domain, account
            )
        )

    def _find_domain_id(self, domain: ft.DomainPath) -> str:
        path = domain or ROOT_DOMAIN
        if path.upper() != ROOT_DOMAIN and not path.upper().startswith(
            ROOT_DOMAIN + "/"
        ):
            path = "{}/{}".format(ROOT_DOMAIN, path)

        domains = self._list("listDomains", "domain", listall=True)
        matches = [d for d in domains if d.get("path", "").lower() == path.lower()]
        if len(matches) != 1:
            raise CapacitySourceError(
                "expected 1 Domain with path {}, but got {}".format(path, len(matches))
            )
        return matches[0]["id"]

    def __str__(self) -> str:
        return "CloudStackClient(url='{}', verify={})".format(
            self.api_url, self.verify_ssl
        )

    def close(self) -> None:
        self.session.close()

    def __repr__(self) -> str:
        return str(self)


def _query_string(params: Dict[str, str]) -> str:
    return "&".join(
        "{}={}".format(key, quote(params[key], safe="*").replace("~", "%7E"))
        for key in sorted(params, key=lambda k: k.lower())
    )


def _copy_network(record: Dict[str, Any], network: Network) -> None:
    network.id = ft.NetworkId(record.get("id", network.id))
    network.name = ft.NetworkName(record.get("name", network.name))
    network.type = record.get("type", "")


def _get_session(verify_ssl: bool) -> requests.Session:
    if not verify_ssl:
        urllib3.disable_warnings(InsecureRequestWarning)

    s = requests.session()
    s.verify = certifi.where() if verify_ssl else False
    s.headers = CaseInsensitiveDict(  # type: ignore
        {"User-Agent": "capc-failuredomains", "Accept": "application/json"}
    )
    return s
