import pytest

from adapters.base import ProviderClient, get_adapter
from adapters.dbnomics import DBnomicsClient
from adapters.fred import FREDClient
from adapters.worldbank import WorldBankClient


@pytest.mark.parametrize(
    ("source", "expected"),
    [("fred", FREDClient), ("worldbank", WorldBankClient), ("dbnomics", DBnomicsClient)],
)
def test_get_adapter_returns_client_class(source, expected):
    adapter = get_adapter(source)
    assert adapter is expected
    assert issubclass(adapter, ProviderClient)
    assert adapter.source == source


def test_get_adapter_unknown_source():
    with pytest.raises(ModuleNotFoundError):
        get_adapter("does_not_exist")
