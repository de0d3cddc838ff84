#!/usr/bin/env python3
"""Simple demo script for the Content-Experiments engine."""

import asyncio
import random
import sys
from pathlib import Path

# Add the src directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from content_experiments.config import ConfigManager
from content_experiments.experiments import ExperimentManager
from content_experiments.storage import InMemoryExperimentRepository

# True conversion rate of each variant in the simulated traffic
CONVERSION_RATES = {"control": 0.10, "question": 0.15}
VISITORS = 4000


async def main():
    """Run a simulated headline test end to end."""
    print("Content-Experiments Simple Demo")
    print("=" * 35)

    config = ConfigManager()
    config.set("scheduler.enabled", False)

    manager = ExperimentManager(config=config, repository=InMemoryExperimentRepository())
    await manager.initialize()

    try:
        created = await manager.create_experiment({
            "name": "Blog headline test",
            "content_id": "post-42",
            "variants": [
                {"id": "control", "name": "Statement", "is_control": True,
                 "content": {"headline": "Ten ways to grow your audience"}},
                {"id": "question", "name": "Question",
                 "content": {"headline": "Want to grow your audience faster?"}},
            ],
            "traffic_split": [50, 50],
            "success_metrics": [{"name": "conversion_rate", "type": "conversion_rate"}],
            "minimum_sample_size": 1000,
        }, auto_start=True)
        print(f"Created experiment {created.experiment_id} ({created.status.value})")
        print()

        print(f"Simulating {VISITORS} visitors...")
        rng = random.Random(42)
        for i in range(VISITORS):
            visitor_id = f"visitor-{i}"
            variant_id = await manager.assign_visitor(created.experiment_id, visitor_id)
            if rng.random() < CONVERSION_RATES[variant_id]:
                await manager.record_conversion(created.experiment_id, variant_id, visitor_id, "conversion_rate")

        analysis = await manager.stop_experiment(created.experiment_id)

        print()
        print("Results:")
        for result in analysis.variant_results:
            label = " (control)" if result.is_control else f"  {result.improvement:+.1f}%"
            print(f"  {result.variant_id:<10} n={result.participants:<5} rate={result.value:.4f}{label}")
        print()
        print(f"  Significant:    {analysis.statistical_significance}")
        print(f"  Confidence:     {analysis.confidence:.2f}%")
        print(f"  Recommendation: {analysis.recommendation.value}")
        print(f"  Winner:         {analysis.winner or 'none'}")
        print()

        print("Next steps:")
        for step in analysis.next_steps:
            print(f"  - {step}")

        for item in await manager.generate_optimization_recommendations(created.experiment_id):
            print(f"  * {item.title} ({item.priority.value})")
    finally:
        await manager.shutdown()

    print()
    print("Demo completed")


if __name__ == "__main__":
    asyncio.run(main())
