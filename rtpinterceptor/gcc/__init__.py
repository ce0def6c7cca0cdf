"""Google Congestion Control building blocks: filters, detectors, rate and loss controllers, pacers."""