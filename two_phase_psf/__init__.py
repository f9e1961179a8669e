from two_phase_psf.errors import PreconditionError, NoStructureError
from two_phase_psf.model import PSFEstimator, KernelEstimate, Status, estimate_psf
from two_phase_psf.refiner import TwoPhaseRefiner
from two_phase_psf.utils.confidence import gradient_confidence
from two_phase_psf.utils.display import float_to_uint8

__version__ = "0.1.0"
