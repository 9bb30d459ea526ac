"""
Deployment helpers - wire a full in-process DCA stack.

Mirrors the mock deployment: two mock tokens (mUSD -> mWETH), a 1:1
router funded with output liquidity, the adapter, the registry, the
aggregator and an executor authorized to consume batches and funded
with input tokens.
"""

from dataclasses import dataclass
from typing import Optional

from fhedca.core.batch.aggregator import BatchAggregator
from fhedca.core.chain import Chain
from fhedca.core.config import AggregatorConfig, ExecutorConfig
from fhedca.core.executor import DcaExecutor
from fhedca.core.intent.intent import DcaParams, encrypt_contribution, encrypt_intent
from fhedca.core.intent.registry import IntentRegistry
from fhedca.core.swap.adapter import DexAdapter, MockRouter
from fhedca.core.token import MockToken
from fhedca.crypto import KeyPair, generate_keypair
from fhedca.crypto.fhe import MockFheBackend
from fhedca.utils.logger import get_logger

logger = get_logger("deployment")

# Router output liquidity and executor input funding (1M tokens each)
DEFAULT_LIQUIDITY = 1_000_000 * 10**18


@dataclass
class Deployment:
    """All contracts of one deployment plus the actors that own them."""
    chain: Chain
    fhe: MockFheBackend
    deployer: KeyPair
    token_in: MockToken
    token_out: MockToken
    router: MockRouter
    adapter: DexAdapter
    registry: IntentRegistry
    aggregator: BatchAggregator
    executor: DcaExecutor

    def enroll(self, user: bytes, params: DcaParams) -> None:
        """
        Create the user's intent and enqueue its per-buy amount.

        Both inputs are encrypted client side for the contract that
        receives them.
        """
        intent_input = encrypt_intent(self.fhe, params, self.registry.address, user)
        self.registry.create_or_update_intent(user, intent_input)

        contribution = encrypt_contribution(self.fhe, params.per_buy, self.aggregator.address, user)
        self.aggregator.enqueue(user, self.token_in.address, self.token_out.address, contribution)

    def authorize_keeper(self, keeper: bytes) -> None:
        """Let `keeper` request decryption on the executor (as the owner)."""
        self.executor.authorize_keeper(self.deployer.address, keeper)

    def stats(self) -> dict:
        return {
            "chain": self.chain.stats(),
            "registry": self.registry.stats(),
            "aggregator": self.aggregator.stats(),
            "executor": self.executor.stats(),
        }


def deploy_demo(
    chain: Optional[Chain] = None,
    aggregator_config: Optional[AggregatorConfig] = None,
    executor_config: Optional[ExecutorConfig] = None,
    price_bps: int = 10_000,
    liquidity: int = DEFAULT_LIQUIDITY,
    executor_funding: int = DEFAULT_LIQUIDITY,
    deployer: Optional[KeyPair] = None,
) -> Deployment:
    """
    Deploy and wire the full stack on a chain.

    Args:
        chain: Host chain (new one if omitted)
        aggregator_config: Readiness thresholds
        executor_config: Keeper fee
        price_bps: Router price (10000 = 1:1)
        liquidity: token_out minted to the router
        executor_funding: token_in minted to the executor
        deployer: Owner keypair (generated if omitted)

    Returns:
        Deployment
    """
    chain = chain or Chain()
    deployer = deployer or generate_keypair()
    owner = deployer.address
    fhe = MockFheBackend()

    token_in = MockToken(chain, owner, "Mock USD", "mUSD")
    token_out = MockToken(chain, owner, "Mock WETH", "mWETH")

    router = MockRouter(chain, owner, token_out, price_bps=price_bps)
    token_out.mint(router.address, liquidity)

    adapter = DexAdapter(chain, owner, router, token_in, token_out)
    registry = IntentRegistry(chain, owner, fhe)
    aggregator = BatchAggregator(chain, owner, registry, fhe, aggregator_config)
    executor = DcaExecutor(chain, owner, aggregator, adapter, token_in, token_out, executor_config)

    aggregator.authorize_consumer(owner, executor.address)
    token_in.mint(executor.address, executor_funding)

    logger.info(
        f"Deployed DCA stack: k_min={aggregator.k_min}, "
        f"window={aggregator.time_window_secs}s, fee={executor.keeper_fee_bps}bps"
    )

    return Deployment(
        chain=chain,
        fhe=fhe,
        deployer=deployer,
        token_in=token_in,
        token_out=token_out,
        router=router,
        adapter=adapter,
        registry=registry,
        aggregator=aggregator,
        executor=executor,
    )
