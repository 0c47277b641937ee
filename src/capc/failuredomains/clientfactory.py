import abc
from abc import ABC
from typing import Dict, Tuple

import capc.failuredomains.fdlogging as logging
from capc.failuredomains.capacity import CapacitySourceInterface, new_capacity_source
from capc.failuredomains.codeanalysis import fdwrapclass
from capc.failuredomains.machine import FailureDomainSpec


class ClientFactoryError(RuntimeError):
    pass


class ClientFactory(ABC):
    @abc.abstractmethod
    def get_cloud_client_and_user(
        self, fd: FailureDomainSpec
    ) -> Tuple[CapacitySourceInterface, CapacitySourceInterface]:
        """
        Returns (client, user): the admin client of the failure domain's endpoint and
        the client scoped to its domain/account. They are the same client when the
        failure domain has no account.
        """

    def close(self) -> None:
        pass


@fdwrapclass
class ConfigClientFactory(ClientFactory):
    """
    Builds clients from the "endpoints" section of the config.

        {
            "endpoints": {
                "default": {
                    "api_url": "https://cloudstack.example.com/client/api",
                    "api_key": "...",
                    "secret_key": "...",
                    "verify_ssl": true
                }
            }
        }
    """

    def __init__(self, config: Dict) -> None:
        self.config = config
        self._clients: Dict[str, CapacitySourceInterface] = {}

    def get_cloud_client_and_user(
        self, fd: FailureDomainSpec
    ) -> Tuple[CapacitySourceInterface, CapacitySourceInterface]:
        endpoints = self.config.get("endpoints") or {}
        endpoint = endpoints.get(fd.endpoint)

        if endpoint is None and not self.config.get("_mock_capacity"):
            raise ClientFactoryError(
                "getting endpoint credentials with ref: {} (known endpoints: {})".format(
                    fd.endpoint, sorted(endpoints.keys())
                )
            )

        client = self._clients.get(fd.endpoint)
        if client is None:
            try:
                client = new_capacity_source(endpoint or {}, self.config)
            except Exception as e:
                raise ClientFactoryError(
                    "parsing endpoint credentials with ref: {}: {}".format(
                        fd.endpoint, e
                    )
                ) from e
            self._clients[fd.endpoint] = client

        if not fd.account:
            return client, client

        logging.debug(
            "Creating client for %s in domain/account %s/%s",
            fd.name,
            fd.domain,
            fd.account,
        )
        user = client.new_client_in_domain_and_account(fd.domain, fd.account)
        return client, user

    def close(self) -> None:
        """Closes the endpoint clients. Account clients share their sessions."""
        for client in self._clients.values():
            client.close()
        self._clients.clear()

    def __str__(self) -> str:
        return "ConfigClientFactory(endpoints={})".format(
            sorted((self.config.get("endpoints") or {}).keys())
        )

    def __repr__(self) -> str:
        return str(self)


def new_client_factory(config: Dict) -> ClientFactory:
    return ConfigClientFactory(config)
