from .numerics import LOG_EPSILON, log_sum_exp, normalize, damp_message, gaussian_damp_message, cartesian_product
