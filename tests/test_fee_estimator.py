import pytest

from smart_account.exceptions import TransportError, ValidationError
from smart_account.fee_estimator import (
    FALLBACK_GAS_LIMIT,
    FeeEstimator,
    FeeOptions,
    TransferRequest,
    fallback_fee_schedule,
)
from smart_account.utils import parse_ether, parse_gwei

from conftest import OTHER_ADDRESS, FakeChain


def make_estimator(chain: FakeChain) -> FeeEstimator:
    return FeeEstimator(fee_reader=chain, limit_estimator=chain, submitter=chain)


@pytest.fixture
def request_():
    return TransferRequest(to=OTHER_ADDRESS, value=parse_ether("0.001"))


class TestEstimateFeeSchedule:

    @pytest.mark.asyncio
    async def test_default_options(self, chain, request_):
        schedule = await make_estimator(chain).estimate_fee_schedule(request_)

        # 1 gwei baseline + 20%
        assert schedule.max_priority_fee_per_gas == parse_gwei("1.2")
        # base fee 20 gwei + priority 1.2 gwei + bump 3 gwei
        assert schedule.max_fee_per_gas == parse_gwei("24.2")
        assert schedule.gas_limit == 21000
        assert schedule.timeout_ms == 30000
        assert schedule.is_fallback is False
        assert schedule.max_fee_per_gas >= schedule.max_priority_fee_per_gas

    @pytest.mark.asyncio
    async def test_limit_estimated_with_computed_fees(self, chain, request_):
        schedule = await make_estimator(chain).estimate_fee_schedule(request_)

        estimated_request, max_fee, priority = chain.limit_requests[0]
        assert estimated_request == request_
        assert max_fee == schedule.max_fee_per_gas
        assert priority == schedule.max_priority_fee_per_gas

    @pytest.mark.asyncio
    async def test_custom_options(self, chain, request_):
        options = FeeOptions(fee_bump_units=5, priority_bump_percent=100, timeout_ms=60000)

        schedule = await make_estimator(chain).estimate_fee_schedule(request_, options)

        assert schedule.max_priority_fee_per_gas == parse_gwei(2)
        assert schedule.max_fee_per_gas == parse_gwei(20 + 2 + 5)
        assert schedule.timeout_ms == 60000

    @pytest.mark.asyncio
    async def test_zero_base_fee(self, request_):
        chain = FakeChain(base_fee=0)

        schedule = await make_estimator(chain).estimate_fee_schedule(request_)

        assert schedule.is_fallback is False
        assert schedule.max_fee_per_gas == parse_gwei("4.2")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("low,high", [(0, 1), (1, 5), (3, 30)])
    async def test_max_fee_monotonic_in_fee_bump(self, chain, request_, low, high):
        estimator = make_estimator(chain)

        low_schedule = await estimator.estimate_fee_schedule(request_, FeeOptions(fee_bump_units=low))
        high_schedule = await estimator.estimate_fee_schedule(request_, FeeOptions(fee_bump_units=high))

        assert high_schedule.max_fee_per_gas > low_schedule.max_fee_per_gas

    @pytest.mark.asyncio
    @pytest.mark.parametrize("low,high", [(0, 20), (20, 50), (50, 200)])
    async def test_priority_fee_monotonic_in_priority_bump(self, chain, request_, low, high):
        estimator = make_estimator(chain)

        low_schedule = await estimator.estimate_fee_schedule(request_, FeeOptions(priority_bump_percent=low))
        high_schedule = await estimator.estimate_fee_schedule(request_, FeeOptions(priority_bump_percent=high))

        assert high_schedule.max_priority_fee_per_gas > low_schedule.max_priority_fee_per_gas
        assert high_schedule.max_fee_per_gas >= low_schedule.max_fee_per_gas

    @pytest.mark.asyncio
    async def test_none_request_fails_fast(self, chain):
        with pytest.raises(ValidationError):
            await make_estimator(chain).estimate_fee_schedule(None)

        assert chain.limit_requests == []


class TestFallback:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("options", [
        FeeOptions(),
        FeeOptions(fee_bump_units=50, priority_bump_percent=500),
        FeeOptions(fee_bump_units=0, priority_bump_percent=0),
    ])
    async def test_unreachable_price_source(self, chain, request_, options):
        chain.fail_fee_reads = True

        schedule = await make_estimator(chain).estimate_fee_schedule(request_, options)

        assert schedule.gas_limit == 21000
        assert schedule.max_fee_per_gas == parse_gwei(10)
        assert schedule.max_priority_fee_per_gas == parse_gwei(2)
        assert schedule.is_fallback is True
        assert schedule == fallback_fee_schedule(options.timeout_ms)

    @pytest.mark.asyncio
    async def test_limit_estimate_failure(self, chain, request_):
        chain.fail_limit_estimate = True

        schedule = await make_estimator(chain).estimate_fee_schedule(request_)

        assert schedule.is_fallback is True
        assert schedule.gas_limit == FALLBACK_GAS_LIMIT

    @pytest.mark.asyncio
    async def test_missing_base_fee(self, request_):
        chain = FakeChain(base_fee=None)

        schedule = await make_estimator(chain).estimate_fee_schedule(request_)

        assert schedule.is_fallback is True

    @pytest.mark.asyncio
    async def test_timeout_preserved(self, chain, request_):
        chain.fail_fee_reads = True

        schedule = await make_estimator(chain).estimate_fee_schedule(request_, FeeOptions(timeout_ms=45000))

        assert schedule.timeout_ms == 45000

    @pytest.mark.asyncio
    async def test_warning_logged(self, chain, request_, log_messages):
        chain.fail_fee_reads = True

        await make_estimator(chain).estimate_fee_schedule(request_)

        warnings = [message for level, message in log_messages if level == "WARNING"]
        assert any("using fallback values" in message for message in warnings)
        assert any("price source unreachable" in message for message in warnings)

    def test_fallback_is_pure(self):
        assert fallback_fee_schedule(30000) == fallback_fee_schedule(30000)


class TestExecuteTransfer:

    @pytest.mark.asyncio
    async def test_submits_and_waits(self, chain, request_):
        outcome = await make_estimator(chain).execute_transfer_with_schedule(
            request_, FeeOptions(timeout_ms=60000)
        )

        submitted_request, schedule = chain.submitted[0]
        assert submitted_request == request_
        assert schedule == outcome.schedule
        assert chain.waits == [(outcome.tx_hash, 60000)]
        assert outcome.receipt['status'] == 1
        assert chain.balance_of(OTHER_ADDRESS) == parse_ether("0.001")

    @pytest.mark.asyncio
    async def test_submits_with_fallback_schedule(self, chain, request_):
        chain.fail_fee_reads = True

        outcome = await make_estimator(chain).execute_transfer_with_schedule(request_)

        assert outcome.schedule.is_fallback is True
        assert chain.submitted[0][1].max_fee_per_gas == parse_gwei(10)

    @pytest.mark.asyncio
    async def test_submission_error_propagates(self, chain, request_):
        chain.fail_submit = True

        with pytest.raises(TransportError, match="connection refused"):
            await make_estimator(chain).execute_transfer_with_schedule(request_)

        assert chain.waits == []

    @pytest.mark.asyncio
    async def test_confirmation_timeout_propagates(self, chain, request_):
        chain.fail_confirmation = True

        with pytest.raises(TransportError, match="Confirmation timeout"):
            await make_estimator(chain).execute_transfer_with_schedule(request_)

        assert len(chain.submitted) == 1


class TestRequestValidation:

    @pytest.mark.parametrize("to", [None, "", "not-an-address", "0x1234"])
    def test_bad_destination(self, to):
        with pytest.raises(ValidationError):
            TransferRequest(to=to, value=1)

    @pytest.mark.parametrize("value", [-1, None, 1.5])
    def test_bad_value(self, value):
        with pytest.raises(ValidationError):
            TransferRequest(to=OTHER_ADDRESS, value=value)

    def test_destination_checksummed(self):
        request = TransferRequest(to=OTHER_ADDRESS.lower(), value=0)
        assert request.to == OTHER_ADDRESS

    @pytest.mark.parametrize("kwargs", [
        {'timeout_ms': 0},
        {'fee_bump_units': -1},
        {'priority_bump_percent': -5},
    ])
    def test_bad_options(self, kwargs):
        with pytest.raises(ValidationError):
            FeeOptions(**kwargs)
