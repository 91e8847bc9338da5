"""Feature extraction for validator scoring.

Modules
-------
derived  : Pure indicator functions: commission stats, performance ratio,
            stability, net yield, market distribution and position.
gatherer : DataGatherer: storage queries → ValidatorFeatureVector, bounded
            worker pool, market comparison and commission trends.
"""
