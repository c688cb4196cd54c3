from typing import Annotated

from fastapi import Depends, Query

from entity_service.core.models import FeatureMode
from entity_service.core.provider import EngineProvider, get_provider
from entity_service.core.resolution.shaper import ShapingOptions

provider_dep = Annotated[EngineProvider, Depends(get_provider)]


# Visibility options shared by every entity-returning route
def get_shaping_options(
    force_minimal: bool = Query(False, alias="forceMinimal"),
    feature_mode: FeatureMode = Query(FeatureMode.WITH_DUPLICATES, alias="featureMode"),
    with_feature_stats: bool = Query(False, alias="withFeatureStats"),
    with_derived_features: bool = Query(False, alias="withDerivedFeatures"),
) -> ShapingOptions:
    return ShapingOptions(
        force_minimal=force_minimal,
        feature_mode=feature_mode,
        with_feature_stats=with_feature_stats,
        with_derived_features=with_derived_features,
    )


options_dep = Annotated[ShapingOptions, Depends(get_shaping_options)]
