# confidence
CONFIDENCE_EPSILON = 0.5   # stabilises r(x) and zeroes flat windows

# preprocessing
GAUSSIAN_KSIZE = 3
SOBEL_KSIZE = 3

# pyramid
NUM_SCALES = 3   # levels are dropped once an axis falls below 2 * (K + 1)

# phase one (edge selection + kernel solve)
MAX_ITER = 5
THRESHOLD_DECAY = 1.1    # tau_r and tau_s are divided by this every iteration
ORIENTATION_BINS = 4
SELECTION_FACTOR = 0.5   # keep at least 0.5 * sqrt(P_I * P_k) pixels per bin

# shock filter
SHOCK_ITER = 5
SHOCK_DT = 0.1
SHOCK_SIGMA = 1.0

# regularization weights (images are handled in [0.0, 1.0])
GAMMA = 1.0      # kernel Tikhonov weight
LAMBDA = 2e-3    # latent image gradient weight

# phase two (iterative support detection)
ISD_ITER = 3
ISD_STEPS = 20
ISD_STEP_SIZE = 0.5
ISD_LAMBDA = 1e-3

# kernel clean-up
KERNEL_THRESHOLD = 1e-3   # relative to the kernel maximum

# diagnostics
DEBUG = False
VERBOSE = False
